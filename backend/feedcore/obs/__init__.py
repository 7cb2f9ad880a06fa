"""Observability bootstrap: request middleware plus one-time log setup."""

from __future__ import annotations

from fastapi import FastAPI

from feedcore.obs import logging as obs_logging
from feedcore.obs import middleware
from feedcore.settings import settings

_logging_configured = False


def init(app: FastAPI) -> None:
	global _logging_configured
	middleware.install(app)
	if settings.obs_enabled and not _logging_configured:
		obs_logging.configure_logging()
		_logging_configured = True


__all__ = ["init"]
