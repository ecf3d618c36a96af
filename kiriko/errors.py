from typing import Optional


class FormatError(ValueError):
    pass


class NotRecognizedError(FormatError):
    def __init__(self, name: str) -> None:
        super().__init__(f'{name}: not a recognized format')
        self.name = name


class UnsupportedVersionError(FormatError):
    def __init__(self, version: int) -> None:
        super().__init__(f'unexpected XP3 minor version {version}')
        self.version = version


class CorruptDataError(FormatError):
    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        if offset is not None:
            message = f'{message} (at offset 0x{offset:x})'
        super().__init__(message)
        self.offset = offset


class UnknownTitleError(KeyError):
    def __init__(self, title: str) -> None:
        super().__init__(f'no filter registered for title {title!r}')
        self.title = title
