import numpy as np
import pytest

from fastbrief import FastBriefParams
from fastbrief.buffers import create_fastbrief_data
from fastbrief.matching import NO_DISTANCE, match_descriptors

WORDS = 8


def _random_bits(n, seed):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 1 << 32, size=(n, WORDS), dtype=np.uint64).astype(np.uint32)


def _flip(row, positions):
    row = row.copy()
    for p in positions:
        row[p // 32] ^= np.uint32(1 << (p % 32))
    return row


def _load(bits_dev, valid_dev, rows, valid, stream):
    n_slots = bits_dev.shape[0]
    bits = np.zeros((n_slots, WORDS), np.uint32)
    bits[: len(rows)] = rows
    flags = np.zeros(n_slots, np.uint8)
    flags[: len(rows)] = 1 if valid is None else valid
    bits_dev.copy_to_device(bits, stream=stream)
    valid_dev.copy_to_device(flags, stream=stream)


class Harness:
    def __init__(self, stream, **kwargs):
        kwargs.setdefault("max_features", 16)
        kwargs.setdefault("max_matches", 16)
        self.params = FastBriefParams(image_size=(32, 32), blur_sigma=0.0, **kwargs)
        self.data = create_fastbrief_data(self.params)
        self.stream = stream

    def run(self, query, reference, q_valid=None, r_valid=None):
        d, s = self.data, self.stream
        query = np.asarray(query, np.uint32)
        _load(d.descriptors.bits, d.descriptors.valid, query, q_valid, s)
        d.keypoints.counter.copy_to_device(
            np.array([len(query), len(query), 0], np.int32), stream=s
        )
        ref = None
        if reference is not None:
            ref = d.keyframes[0]
            _load(ref.bits, ref.valid, np.asarray(reference, np.uint32), r_valid, s)
            ref.counter.copy_to_device(np.array([len(reference)], np.int32), stream=s)
        return self.run_against(ref, len(query))

    def run_against(self, ref, n_query):
        d, s = self.data, self.stream
        match_descriptors(d, self.params, ref, s)
        s.synchronize()
        counter = d.matches.counter.copy_to_host()
        return (
            d.matches.pairs.copy_to_host()[: counter[0]],
            d.matches.best.copy_to_host()[:n_query],
            d.matches.distance.copy_to_host()[:n_query],
            counter,
        )


def test_self_match_is_identity(stream):
    bits = _random_bits(10, seed=0)
    pairs, best, distance, counter = Harness(stream).run(bits, bits)
    assert pairs.tolist() == [[i, i, 0] for i in range(10)]
    assert best.tolist() == list(range(10))
    assert not distance.any()
    assert counter.tolist() == [10, 10]


def test_matches_sorted_by_distance_then_query_and_truncated(stream):
    ref = _random_bits(4, seed=1)
    query = [
        _flip(ref[2], range(5)),
        _flip(ref[0], [7]),
        _flip(ref[1], [10, 20, 30, 40, 50]),
        ref[3],
    ]
    pairs, best, distance, counter = Harness(stream, max_matches=3, ratio=1.0).run(
        query, ref
    )
    assert pairs.tolist() == [[3, 3, 0], [1, 0, 1], [0, 2, 5]]
    assert counter.tolist() == [3, 4]
    assert best.tolist() == [2, 0, 1, 3]
    assert distance.tolist() == [5, 1, 5, 0]


def test_ambiguous_match_fails_ratio_test(stream):
    a = _random_bits(1, seed=2)[0]
    ref = [a, _flip(a, [0, 1])]
    ambiguous = _flip(a, [0])

    pairs, best, _, counter = Harness(stream).run([ambiguous, a], ref)
    assert pairs.tolist() == [[1, 0, 0]]
    assert best.tolist() == [-1, 0]
    assert counter.tolist() == [1, 1]

    # equal distances: the smaller reference index wins once the test is off
    pairs, best, _, _ = Harness(stream, ratio=1.0).run([ambiguous], ref)
    assert pairs.tolist() == [[0, 0, 1]]


@pytest.mark.parametrize("ratio, expected", [(0.8, []), (1.0, [[0, 0, 0]])])
def test_duplicate_references_are_ambiguous(stream, ratio, expected):
    a = _random_bits(1, seed=7)[0]
    pairs, best, distance, _ = Harness(stream, ratio=ratio).run([a], [a, a])
    assert pairs.tolist() == expected
    assert best.tolist() == ([0] if expected else [-1])
    assert distance.tolist() == [0]


@pytest.mark.parametrize("max_distance, expected", [(64, 0), (256, 3)])
def test_distance_threshold(stream, max_distance, expected):
    query = _random_bits(3, seed=3)
    ref = _random_bits(1, seed=4)
    pairs, _, distance, _ = Harness(stream, max_distance=max_distance).run(query, ref)
    assert len(pairs) == expected
    assert np.all(distance > 64)


def test_invalid_descriptors_never_match(stream):
    q0 = _random_bits(1, seed=5)[0]
    ref = [q0, _flip(q0, [3, 4])]
    pairs, best, distance, _ = Harness(stream).run(
        [q0, q0], ref, q_valid=[1, 0], r_valid=[0, 1]
    )
    assert pairs.tolist() == [[0, 1, 2]]
    assert best.tolist() == [1, -1]
    assert distance[1] == NO_DISTANCE


def test_no_reference_clears_previous_matches(stream):
    h = Harness(stream)
    bits = _random_bits(5, seed=6)
    pairs, _, _, _ = h.run(bits, bits)
    assert len(pairs) == 5

    pairs, best, _, counter = h.run_against(None, 5)
    assert len(pairs) == 0
    assert np.all(best == -1)
    assert counter.tolist() == [0, 0]
