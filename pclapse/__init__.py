"""pclapse - timelapse capture catalog and paced video export."""
__version__ = "0.3.0"
