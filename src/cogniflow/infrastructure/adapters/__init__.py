from .file_remote import FileRemoteSource
from .http_remote import HttpRemoteSource
from .json_file_storage import JsonFileStorage

__all__ = ["FileRemoteSource", "HttpRemoteSource", "JsonFileStorage"]
