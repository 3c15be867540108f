# -*- coding: utf-8 -*-

from __future__ import annotations


class ExtractorError(Exception):
    """Base class for layer extraction failures."""


class NoDocumentError(ExtractorError):
    """Raised when extraction is requested but no document is open."""

    def __init__(self, message: str = "You don't have any opened documents...") -> None:
        super().__init__(message)


class HostError(ExtractorError):
    """Raised by the host document for an operation it cannot perform."""
