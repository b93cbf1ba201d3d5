from buddy.cache import PromptCache, TrimmableCache, common_prefix_length
from conftest import FakeLayer


def make_cache(tokens, layers=None):
    cache = PromptCache(layers if layers is not None else [FakeLayer(), FakeLayer()])
    cache.extend(tokens)
    return cache


class TestCommonPrefix:
    def test_lengths(self):
        assert common_prefix_length([1, 2, 3], [1, 2, 4]) == 2
        assert common_prefix_length([1, 2], [1, 2, 3]) == 2
        assert common_prefix_length([], [1]) == 0
        assert common_prefix_length([5], [6]) == 0


class TestPromptCache:
    def test_layers_satisfy_protocol(self):
        assert isinstance(FakeLayer(), TrimmableCache)

    def test_empty_cache_returns_whole_prompt(self):
        cache = make_cache([])

        assert cache.reconcile([1, 2, 3]) == [1, 2, 3]
        assert cache.tokens == [1, 2, 3]

    def test_extension_returns_suffix(self):
        cache = make_cache([1, 2, 3])

        suffix = cache.reconcile([1, 2, 3, 4, 5])

        assert suffix == [4, 5]
        assert cache.tokens == [1, 2, 3, 4, 5]
        assert all(layer.trim_calls == [] for layer in cache.layers)

    def test_reconcile_is_idempotent(self):
        cache = make_cache([1, 2, 3])

        assert cache.reconcile([1, 2, 3]) == []
        assert cache.reconcile([1, 2, 3]) == []
        assert cache.tokens == [1, 2, 3]

    def test_divergence_trims_layers(self):
        cache = make_cache([1, 2, 3, 4])

        suffix = cache.reconcile([1, 2, 9])

        assert suffix == [9]
        assert cache.tokens == [1, 2, 9]
        assert all(layer.trim_calls == [2] for layer in cache.layers)

    def test_shorter_prompt_trims_to_prefix(self):
        cache = make_cache([1, 2, 3, 4])

        assert cache.reconcile([1, 2]) == []
        assert cache.tokens == [1, 2]

    def test_untrimmable_layer_invalidates(self):
        cache = make_cache([1, 2, 3], layers=[FakeLayer(), FakeLayer(trimmable=False)])

        assert cache.reconcile([1, 5]) is None
        assert cache.tokens == [1, 2, 3]
        assert cache.layers[0].trim_calls == []

    def test_partial_trim_invalidates(self):
        cache = make_cache([1, 2, 3, 4], layers=[FakeLayer(limit=1)])

        assert cache.reconcile([1, 9]) is None

    def test_trim_reports_smallest_amount(self):
        cache = make_cache([1, 2, 3], layers=[FakeLayer(), FakeLayer(limit=1)])

        assert cache.trim(3) == 1

    def test_trim_without_layers(self):
        assert PromptCache([]).trim(2) == 0

    def test_rewind(self):
        cache = make_cache([1, 2, 3])

        assert cache.rewind(1) == [3]
        assert cache.tokens == [1, 2, 3]
        assert cache.rewind(0) == []

    def test_rewind_untrimmable(self):
        cache = make_cache([1, 2, 3], layers=[FakeLayer(trimmable=False)])

        assert cache.rewind(1) is None

    def test_sync_drops_tokens_the_layers_do_not_hold(self):
        cache = make_cache([1, 2, 3, 4])

        cache.sync(3)

        assert cache.tokens == [1, 2, 3]

    def test_sync_trims_layers_holding_extra_tokens(self):
        cache = make_cache([1, 2])

        cache.sync(4)

        assert cache.tokens == [1, 2]
        assert all(layer.trim_calls == [2] for layer in cache.layers)
