"""Dashboard state: the store, its selectors, and the channel binding."""

from legalai_engine.state.bindings import bind_store
from legalai_engine.state.store import AppState, AppStore

__all__ = ["AppState", "AppStore", "bind_store"]
