"""Image Sync: two-way synchronization between a local folder and a remote image catalog."""

__version__ = "0.1.0"
