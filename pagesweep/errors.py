# pagesweep/errors.py
from __future__ import annotations


class PageSweepError(Exception):
    """Base class for failures surfaced to the caller."""


class NotAllowlistedError(PageSweepError):
    def __init__(self, url: str):
        super().__init__("Domain not allowlisted")
        self.url = url


class ExtractionError(PageSweepError):
    pass


class BridgeError(PageSweepError):
    """A collaborator behind a message boundary answered with a malformed reply."""


class InvalidInputError(PageSweepError):
    pass
