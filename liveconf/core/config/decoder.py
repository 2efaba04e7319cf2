"""Decoders turning raw DataSet payloads into nested mappings."""

from __future__ import annotations

import configparser
import json
import logging
import threading
import tomllib
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from liveconf.core.config.errors import NoDecoderError

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], Mapping[str, Any]]


def _text(data: bytes) -> str:
    return data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data


def decode_json(data: bytes) -> Mapping[str, Any]:
    return json.loads(_text(data))


def decode_yaml(data: bytes) -> Mapping[str, Any]:
    return yaml.safe_load(_text(data)) or {}


def decode_toml(data: bytes) -> Mapping[str, Any]:
    return tomllib.loads(_text(data))


def decode_ini(data: bytes) -> Mapping[str, Any]:
    """Decode INI text; keys of the ``DEFAULT`` section belong to the root group."""
    parser = configparser.ConfigParser(interpolation=None, default_section="\x00")
    parser.optionxform = str  # keep the case of option names
    parser.read_string(_text(data))

    result: Dict[str, Any] = {}
    for section in parser.sections():
        values = dict(parser.items(section, raw=True))
        if section == "DEFAULT":
            result.update(values)
        else:
            result.setdefault(section, {}).update(values)
    return result


class DecoderRegistry:
    """Named decoders with case-insensitive names and alias chains."""

    def __init__(self, lock: Optional[threading.RLock] = None, builtins: bool = True):
        self._lock = lock if lock is not None else threading.RLock()
        self._decoders: Dict[str, Decoder] = {}
        self._aliases: Dict[str, str] = {}

        if builtins:
            self.add_decoder("json", decode_json)
            self.add_decoder("yaml", decode_yaml)
            self.add_decoder("toml", decode_toml)
            self.add_decoder("ini", decode_ini)
            self.add_decoder_alias("yml", "yaml")
            self.add_decoder_alias("conf", "ini")
            self.add_decoder_alias("cfg", "ini")

    def add_decoder(self, name: str, decoder: Decoder, force: bool = False) -> bool:
        """Register a decoder; return False if the name is taken and not forced."""
        name = name.lower()
        with self._lock:
            if name in self._decoders and not force:
                return False
            self._decoders[name] = decoder
        logger.debug(f"Registered the decoder '{name}'")
        return True

    def add_decoder_alias(self, alias: str, name: str) -> None:
        with self._lock:
            self._aliases[alias.lower()] = name.lower()

    def get_decoder(self, name: str) -> Optional[Decoder]:
        """Resolve ``name`` through the alias chain and return its decoder."""
        name = name.lower()
        seen = set()
        with self._lock:
            while name not in self._decoders:
                target = self._aliases.get(name)
                if target is None or name in seen:
                    return None
                seen.add(name)
                name = target
            return self._decoders[name]

    def decode(self, name: str, data: bytes) -> Mapping[str, Any]:
        """Decode ``data``, raising NoDecoderError for an unknown format."""
        decoder = self.get_decoder(name)
        if decoder is None:
            raise NoDecoderError(name)
        return decoder(data)

    def names(self):
        with self._lock:
            return sorted(set(self._decoders) | set(self._aliases))


def flatten_map(data: Mapping[str, Any], sep: str = ".", prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into ``sep``-joined keys, depth first.

    Keys are joined verbatim, so a key that already contains the separator is
    kept as it is. Lists and scalars are leaves.
    """
    result: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{sep}{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten_map(value, sep, full_key))
        else:
            result[full_key] = value
    return result
