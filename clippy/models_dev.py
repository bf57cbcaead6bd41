from __future__ import annotations

import httpx

from clippy.providers.base import ProviderError

MODELS_URL = "https://models.dev/api/models"


def fetch_models(client: httpx.Client | None = None, timeout: float = 15.0) -> list[str]:
    """Return the model ids listed by models.dev."""
    http = client or httpx.Client(timeout=timeout)
    try:
        response = http.get(MODELS_URL)
        if response.status_code != 200:
            raise ProviderError(f"failed to fetch models: {response.status_code} {response.reason_phrase}")
        data = response.json()
    except httpx.HTTPError as exc:
        raise ProviderError(f"failed to fetch models: {exc}") from exc
    except ValueError as exc:
        raise ProviderError(f"failed to fetch models: invalid JSON ({exc})") from exc
    finally:
        if client is None:
            http.close()

    if not isinstance(data, list):
        raise ProviderError("failed to fetch models: unexpected response shape")
    return [m["id"] for m in data if isinstance(m, dict) and m.get("id")]
