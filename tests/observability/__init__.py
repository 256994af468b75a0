# tests/observability/__init__.py
"""
Tests for the LLMGate observability package.

Test Files:
- test_histogram.py: circular buffer, percentiles
- test_cost.py: null and static pricing calculators
- test_events.py: event types and filters
- test_collector.py: metrics hub counters, shards, snapshots, lifecycle
- test_subscription.py: subscriptions and hooks
- test_stream_wrapper.py: streaming instrumentation

Running Tests:
    pytest tests/observability/ -v
    pytest tests/observability/ --cov=llmgate.observability --cov-report=html
"""
