"""
Basic tests for the quorum package
"""
from quorum import __version__


def test_version():
    """Test that version is defined."""
    assert __version__ == "0.1.0"


def test_import():
    """Test that the public API can be imported."""
    import quorum
    assert quorum.Orchestrator is not None
    assert quorum.load_config is not None


def test_token_usage_is_additive():
    """Usage from several calls sums field by field."""
    from quorum import TokenUsage

    total = sum([TokenUsage(input_tokens=3, output_tokens=1), TokenUsage(input_tokens=2)], TokenUsage())
    assert total == TokenUsage(input_tokens=5, output_tokens=1)
    assert total.total_tokens == 6
