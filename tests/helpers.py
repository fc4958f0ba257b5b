# tests/helpers.py

import asyncio

import numpy as np

def run(coro):
    """Drives a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)

def assert_tile(image: np.ndarray, size: int):
    """Strictly verify a rendered tile's layout."""
    assert image is not None, "Expected a tile, got None"
    assert image.dtype == np.uint8, f"Tile dtype is {image.dtype}, expected uint8"
    assert image.shape == (size, size, 4), \
        f"Shape mismatch: {image.shape} != {(size, size, 4)}"

def assert_rgba_close(current: np.ndarray, reference: np.ndarray, atol: int = 2):
    """Check two RGBA buffers agree channel by channel within `atol`."""
    assert current.shape == reference.shape, \
        f"Shape mismatch: {current.shape} != {reference.shape}"
    diff = np.abs(current.astype(np.int16) - reference.astype(np.int16))
    worst = int(diff.max()) if diff.size else 0
    assert worst <= atol, f"Max channel difference {worst} exceeds {atol}"

def transparent(image: np.ndarray) -> np.ndarray:
    return image[..., 3] == 0

def make_pyramid(base: np.ndarray, factors=(1, 2, 4)):
    """Decimates a (bands, h, w) or (h, w) array into a finest-first pyramid."""
    return [np.ascontiguousarray(base[..., ::f, ::f]) for f in factors]
