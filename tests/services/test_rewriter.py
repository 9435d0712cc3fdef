from __future__ import annotations

from omniplexer.services.rewriter import rewrite_metrics


def test_type_line_is_prefixed() -> None:
    assert rewrite_metrics("# TYPE foo_metric counter", "ns") == "# TYPE ns_foo_metric counter"


def test_help_line_keeps_description() -> None:
    out = rewrite_metrics("# HELP foo_metric Total foos seen.", "ns")
    assert out == "# HELP ns_foo_metric Total foos seen."


def test_malformed_metadata_passes_through() -> None:
    assert rewrite_metrics("# TYPE", "ns") == "# TYPE"
    assert rewrite_metrics("# HELP ", "ns") == "# HELP "


def test_other_comments_pass_through() -> None:
    assert rewrite_metrics("# EOF", "ns") == "# EOF"
    assert rewrite_metrics("# scraped by node exporter", "ns") == "# scraped by node exporter"


def test_data_line_only_name_is_rewritten() -> None:
    line = 'http_requests_total{method="GET",path="/http_requests_total"} 1027 1395066363000'
    assert rewrite_metrics(line, "web") == (
        'web_http_requests_total{method="GET",path="/http_requests_total"} 1027 1395066363000'
    )


def test_data_line_without_labels() -> None:
    assert rewrite_metrics("up 1", "node_a") == "node_a_up 1"


def test_colon_names_are_supported() -> None:
    assert rewrite_metrics("job:rate5m:sum 3.2", "ns") == "ns_job:rate5m:sum 3.2"


def test_line_not_starting_with_a_name_passes_through() -> None:
    assert rewrite_metrics("  indented 1", "ns") == "  indented 1"
    assert rewrite_metrics("9lives 1", "ns") == "9lives 1"


def test_blank_lines_are_dropped() -> None:
    body = "# TYPE up gauge\n\nup 1\n   \n\nother 2\n"
    assert rewrite_metrics(body, "ns") == "# TYPE ns_up gauge\nns_up 1\nns_other 2"


def test_full_exposition_body() -> None:
    body = (
        "# HELP node_load1 1m load average.\n"
        "# TYPE node_load1 gauge\n"
        "node_load1 0.21\n"
        "# HELP node_cpu_seconds_total Seconds the CPUs spent in each mode.\n"
        "# TYPE node_cpu_seconds_total counter\n"
        'node_cpu_seconds_total{cpu="0",mode="idle"} 2258.3\n'
    )
    assert rewrite_metrics(body, "web1").split("\n") == [
        "# HELP web1_node_load1 1m load average.",
        "# TYPE web1_node_load1 gauge",
        "web1_node_load1 0.21",
        "# HELP web1_node_cpu_seconds_total Seconds the CPUs spent in each mode.",
        "# TYPE web1_node_cpu_seconds_total counter",
        'web1_node_cpu_seconds_total{cpu="0",mode="idle"} 2258.3',
    ]


def test_rewrite_is_pure() -> None:
    body = "# TYPE up gauge\nup 1\n"
    assert rewrite_metrics(body, "ns") == rewrite_metrics(body, "ns")


def test_rewrite_twice_double_prefixes() -> None:
    once = rewrite_metrics("# TYPE up gauge\nup 1", "ns")
    twice = rewrite_metrics(once, "ns")
    assert twice == "# TYPE ns_ns_up gauge\nns_ns_up 1"
