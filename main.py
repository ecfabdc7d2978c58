#!/usr/bin/env python3
"""
NotifyQueue - persistent notification delivery queue with retries and health checks
"""
import argparse
import asyncio
import json
import os
import sys

from bootstrap.app import Application


def create_app(env_file=".env", show_banner=True):
    """Create and return a new application instance."""
    return Application(env_file=env_file, show_banner=show_banner)

def create_env_file():
    """Create a default .env file if it doesn't exist."""
    if not os.path.exists(".env"):
        with open(".env", "w") as f:
            f.write("""# Database Configuration
ENABLE_DATABASE=false
DATABASE_URL=
DB_HOST=localhost
DB_PORT=3306
DB_NAME=notifyqueue
DB_USER=root
DB_PASS=

# Queue Configuration
QUEUE_POLL_INTERVAL=15
QUEUE_BATCH_SIZE=5
QUEUE_THROTTLE=0.1
QUEUE_PROCESSING_TIMEOUT=300
QUEUE_REAPER_INTERVAL=60
QUEUE_BACKOFF_TABLE=30,120,300,900,1800,3600,7200,14400
QUEUE_MAX_ATTEMPTS=3
QUEUE_RETENTION_DAYS=7
QUEUE_CLEANUP_BATCH=500
QUEUE_CLEANUP_INTERVAL=86400
QUEUE_HEALTH_INTERVAL=300

# Channels used by the default logging dispatcher
NOTIFY_CHANNELS=email,sms,push

# Logging Configuration
LOG_LEVEL=INFO
LOG_FORMAT=%(asctime)s - %(name)s - %(levelname)s - %(message)s
""")
        print("Created default .env file")

def run_operation(operation):
    """Run one queue operation against the configured store and print the result."""
    app = create_app(show_banner=False)
    result = asyncio.run(app.execute(operation))
    if hasattr(result, "to_dict"):
        result = result.to_dict()
    print(json.dumps(result, indent=2, default=str))
    return result

def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="NotifyQueue - notification delivery queue")
    parser.add_argument('--init', action='store_true', help="Create a default .env file")
    parser.add_argument('--run', action='store_true', help="Run the queue service (processing, reaper, maintenance)")
    parser.add_argument('--stats', action='store_true', help="Print queue statistics")
    parser.add_argument('--health', action='store_true', help="Print the queue health verdict")
    parser.add_argument('--retry-failed', action='store_true', help="Return every failed job to pending")
    parser.add_argument('--cleanup', type=int, nargs='?', const=-1, metavar='DAYS',
                        help="Delete finished jobs older than DAYS (default: QUEUE_RETENTION_DAYS)")

    args = parser.parse_args()

    if args.init:
        create_env_file()
        print("NotifyQueue project initialized successfully!")
        return

    if args.stats:
        run_operation(lambda queue: queue.get_queue_stats())
        return

    if args.health:
        health = run_operation(lambda queue: queue.get_queue_health())
        sys.exit(0 if health["status"] != "critical" else 2)

    if args.retry_failed:
        run_operation(lambda queue: queue.retry_all_failed())
        return

    if args.cleanup is not None:
        days = None if args.cleanup < 0 else args.cleanup
        run_operation(lambda queue: queue.cleanup_old(days))
        return

    if args.run or not sys.argv[1:]:
        create_env_file()
        app = create_app()
        app.run()

if __name__ == "__main__":
    main()
