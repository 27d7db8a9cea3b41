"""Azure NetApp Files storage driver."""
