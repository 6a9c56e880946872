"""Reusable test doubles."""

from .fakes import FakeRemote, FakeRunner, FakeSessionFactory

__all__ = ["FakeRemote", "FakeRunner", "FakeSessionFactory"]
