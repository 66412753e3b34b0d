"""Ingestion helpers."""

from __future__ import annotations

import pathlib
from dataclasses import dataclass

import yaml

STREAMS_PATH = pathlib.Path(__file__).with_name("discovery.yml")

POPULARITY_SORT = "popularity.desc"
DATE_SORT = "primary_release_date.asc"
SORT_ORDERS = (POPULARITY_SORT, DATE_SORT)


@dataclass(slots=True, frozen=True)
class DiscoveryStream:
    language: str
    sort_by: str
    max_pages: int

    @property
    def key(self) -> str:
        return f"{self.language}/{self.sort_by}"


def load_streams(path: pathlib.Path = STREAMS_PATH) -> list[DiscoveryStream]:
    data = yaml.safe_load(path.read_text()) or {}
    defaults = data.get("max_pages") or {}
    streams: list[DiscoveryStream] = []
    for item in data.get("languages") or []:
        overrides = item.get("max_pages") or {}
        for sort_by in SORT_ORDERS:
            max_pages = int(overrides.get(sort_by, defaults.get(sort_by, 1)))
            streams.append(DiscoveryStream(language=item["code"], sort_by=sort_by, max_pages=max_pages))
    return streams
