"""iamreach: find the cloud permissions a whole program can statically use."""

__version__ = "0.3.0"
