from cogniflow.consts import VERSION

__version__ = VERSION
