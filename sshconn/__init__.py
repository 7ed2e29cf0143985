"""ssh-conn: manage the hosts in your SSH config and connect to them."""

__version__ = "1.0.0"
