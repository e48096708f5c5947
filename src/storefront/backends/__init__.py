from storefront.backends.filesystem import FileBackend

__all__ = ["FileBackend"]
