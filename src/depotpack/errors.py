__all__ = [
    "DepotPackError",
    "InvalidAppIdError",
    "SourceError",
    "SourceEmptyError",
    "RaceError",
    "PackagingError",
]


class DepotPackError(Exception):
    pass


class InvalidAppIdError(DepotPackError, ValueError):
    def __init__(self, app_id: str):
        super().__init__(f"Invalid app id {app_id!r}, expected a decimal number")
        self.app_id = app_id


class SourceError(DepotPackError):
    """A source could not be reached or returned nothing usable."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class SourceEmptyError(SourceError):
    """The source answered, but has nothing for the requested id."""


class RaceError(SourceError):
    def __init__(self, source: str, candidates: int):
        super().__init__(source, f"all {candidates} candidates failed")
        self.candidates = candidates


class PackagingError(DepotPackError):
    pass
