"""HTTP cache header presets.

- public: CDN-cacheable, semi-static content (event pages).
- private: user-specific content, browser cache only.
- no-cache: dynamic content that must revalidate every time.
"""

from __future__ import annotations


def public_cache_headers(
    max_age: int = 60,
    stale_while_revalidate: int = 300,
    private: bool = False,
) -> dict[str, str]:
    if private:
        value = f"private, max-age={max_age}, stale-while-revalidate={stale_while_revalidate}"
    else:
        value = f"public, s-maxage={max_age}, stale-while-revalidate={stale_while_revalidate}"
    return {"Cache-Control": value}


def private_cache_headers(max_age: int = 30, stale_while_revalidate: int = 60) -> dict[str, str]:
    return {
        "Cache-Control": f"private, max-age={max_age}, stale-while-revalidate={stale_while_revalidate}",
    }


def no_cache_headers() -> dict[str, str]:
    return {
        "Cache-Control": "no-cache, no-store, must-revalidate",
        "Pragma": "no-cache",
        "Expires": "0",
    }
