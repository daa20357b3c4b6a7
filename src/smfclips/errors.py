from __future__ import annotations

class SmfClipsError(Exception):
    """Basisklasse aller Fehler dieses Pakets."""

class DecodeError(SmfClipsError):
    """Datei ist kein lesbares SMF (Header, Chunk-Länge, Event-Stream)."""

class ConfigError(SmfClipsError):
    """Ungültige Split- oder Mapping-Konfiguration."""
