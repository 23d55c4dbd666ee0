from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any
from urllib.parse import urljoin

from .constants import BASE_URL_ENV_VAR, DEFAULT_BASE_URL, OPTIONS_ENV_VAR
from .models import RenderOptions


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            merged[key] = current + value
        else:
            merged[key] = value
    return merged


def resolve_options(
    *layers: RenderOptions | Mapping[str, Any] | None,
    environ: Mapping[str, str] | None = None,
) -> RenderOptions:
    """
    Layer option sets, later ones winning, then apply PAGEPILOT_OPTIONS.

    Only explicitly set fields take part in the merge; nested dicts merge
    recursively and lists concatenate.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        if isinstance(layer, RenderOptions):
            layer = layer.model_dump(exclude_unset=True)
        data = _merge(data, layer)

    raw = environ.get(OPTIONS_ENV_VAR)
    if raw:
        data = _merge(data, json.loads(raw))
    return RenderOptions(**data).expanded()


def resolve_url(options: RenderOptions, environ: Mapping[str, str] | None = None) -> str:
    environ = os.environ if environ is None else environ
    url = options.url or environ.get(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL
    if options.sub_path:
        url = urljoin(url, options.sub_path)
    return url


def resolve_headless(options: RenderOptions, *, is_debugging: bool) -> bool:
    if is_debugging:
        return False
    return True if options.headless is None else options.headless
