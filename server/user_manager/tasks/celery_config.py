"""Celery configuration for the import, download and avatar queues."""

from kombu import Exchange, Queue

# ==============================================================================
# BROKER & BACKEND
# ==============================================================================

broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10
broker_pool_limit = 10
broker_heartbeat = 30

result_expires = 3600

# ==============================================================================
# TASK EXECUTION
# ==============================================================================

# Imports are not idempotent: a redelivered task finds the record already
# claimed and exits, so acks stay late but nothing is retried automatically.
task_acks_late = True
task_reject_on_worker_lost = False
worker_prefetch_multiplier = 1

task_track_started = True
task_send_sent_event = True

# Only JSON on the wire, never pickle
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

task_max_retries = 0

# ==============================================================================
# QUEUES
# ==============================================================================

default_exchange = Exchange("default", type="direct", durable=True)
import_exchange = Exchange("user_imports", type="direct", durable=True)

task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default", durable=True),
    Queue(
        "import_queue",
        exchange=import_exchange,
        routing_key="import.process",
        durable=True,
    ),
    Queue(
        "download_queue",
        exchange=import_exchange,
        routing_key="import.download",
        durable=True,
    ),
    Queue(
        "avatar_queue",
        exchange=import_exchange,
        routing_key="user.avatar",
        durable=True,
    ),
)

task_default_queue = "default"
task_default_exchange = "default"
task_default_routing_key = "default"

task_routes = {
    "process_user_import": {"queue": "import_queue", "routing_key": "import.process"},
    "download_import_file": {"queue": "download_queue", "routing_key": "import.download"},
    "attach_avatar_from_url": {"queue": "avatar_queue", "routing_key": "user.avatar"},
}

# ==============================================================================
# WORKER
# ==============================================================================

worker_concurrency = 4
worker_max_tasks_per_child = 1000
worker_send_task_events = True
worker_log_format = "[%(asctime)s: %(levelname)s/%(processName)s] %(message)s"
worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"

task_default_delivery_mode = 2

task_annotations = {
    "download_import_file": {"time_limit": 300, "soft_time_limit": 270},
    "attach_avatar_from_url": {"time_limit": 60, "soft_time_limit": 50},
}
