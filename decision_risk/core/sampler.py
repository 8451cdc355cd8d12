"""Counter-based random streams for chunked, reproducible sampling.

Each scenario variable and each option's game interaction owns a named
stream. A stream is a NumPy ``Philox`` generator keyed by
``SeedSequence([seed, stream_id])``; the value at any position is reached
by setting the Philox counter directly, so draw ``i`` is identical whether
it is generated alone, in a chunk, or in a full run on one thread.
"""

import hashlib
from typing import List, Tuple

import numpy as np

# Philox produces 64-bit outputs in blocks of four per counter increment.
_PHILOX_BLOCK = 4


def stream_id(name: str) -> int:
    """Stable 64-bit identifier for a stream name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


class CounterStream:
    """Addressable stream of uniforms in [0, 1).

    Args:
        seed: Non-negative run seed
        name: Stream name, e.g. ``"variable:demand"``
    """

    def __init__(self, seed: int, name: str):
        self.seed = seed
        self.name = name
        self._key = np.random.SeedSequence([seed, stream_id(name)]).generate_state(2, dtype=np.uint64)

    def uniforms(self, start: int, stop: int, per_draw: int = 1) -> np.ndarray:
        """Uniforms for draws ``start..stop-1``.

        Draw ``i`` owns stream positions ``per_draw*i`` to ``per_draw*(i+1)-1``.

        Returns:
            Array of shape (stop - start, per_draw)
        """
        n = stop - start
        if n <= 0:
            return np.empty((0, per_draw))

        first = per_draw * start
        skip = first % _PHILOX_BLOCK
        bit_generator = np.random.Philox(key=self._key, counter=first // _PHILOX_BLOCK)
        values = np.random.Generator(bit_generator).random(per_draw * n + skip)
        return values[skip:].reshape(n, per_draw)

    def standard_normals(self, start: int, stop: int) -> np.ndarray:
        """Box-Muller standard normals for draws ``start..stop-1``."""
        u = self.uniforms(start, stop, per_draw=2)
        # 1 - u lies in (0, 1], keeping the log finite
        radius = np.sqrt(-2.0 * np.log(1.0 - u[:, 0]))
        return radius * np.cos(2.0 * np.pi * u[:, 1])


def variable_stream(seed: int, variable_id: str) -> CounterStream:
    return CounterStream(seed, f"variable:{variable_id}")


def game_stream(seed: int, option_id: str) -> CounterStream:
    return CounterStream(seed, f"game:{option_id}")


def plan_chunks(n_draws: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Split draw indices into contiguous ``[start, stop)`` ranges."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [(start, min(start + chunk_size, n_draws)) for start in range(0, n_draws, chunk_size)]
