"""Entitlement service integration."""
