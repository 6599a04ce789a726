"""メトリクス収集（Prometheus）"""

from prometheus_client import Counter, Histogram

# モデル呼び出しのメトリクス
model_requests_counter = Counter(
    "model_requests_total",
    "Total model invocations per dispatch slot",
    ["model", "outcome"],  # outcome: success / error / timeout
)

model_request_duration = Histogram(
    "model_request_seconds",
    "Time spent waiting for a model slot",
    ["model"],
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0],
)

# ストアのメトリクス
store_operation_duration = Histogram(
    "store_operation_seconds",
    "Store operation execution time",
    ["operation"],  # create_session, append_messages 等でラベル付け
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

store_errors_counter = Counter(
    "store_errors_total",
    "Total store errors",
    ["kind"],
)

# キャッシュのメトリクス
cache_lookups_counter = Counter(
    "cache_lookups_total",
    "Conversation cache lookups",
    ["result"],  # hit / miss
)
