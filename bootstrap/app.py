import asyncio
import logging
import logging.handlers
import os
import platform
import signal
from importlib import metadata
from pathlib import Path

import psutil
from dotenv import load_dotenv

from app.channels import LoggingSender, MultiChannelDispatcher
from core.config import QueueConfig
from core.model import Model
from core.queue import DatabaseJobStore, MemoryJobStore, NotificationQueue, PeriodicTask
from core.queue.stats import CRITICAL


class Application:
    @staticmethod
    def get_version():
        """Get the installed distribution version."""
        try:
            return metadata.version("notifyqueue")
        except metadata.PackageNotFoundError:
            return "latest"

    @staticmethod
    def print_banner():
        """Print the NotifyQueue banner with system information."""
        version = Application.get_version()

        system_info = platform.system()
        cpu_count = psutil.cpu_count(logical=True)
        memory = psutil.virtual_memory()
        memory_gb = round(memory.total / (1024**3), 1)

        banner = f"""
 _   _       _   _  __       ___
| \\ | | ___ | |_(_)/ _|_   _/ _ \\ _   _  ___ _   _  ___
|  \\| |/ _ \\| __| | |_| | | | | | | | | |/ _ \\ | | |/ _ \\
| |\\  | (_) | |_| |  _| |_| | |_| | |_| |  __/ |_| |  __/
|_| \\_|\\___/ \\__|_|_|  \\__, |\\__\\_\\\\__,_|\\___|\\__,_|\\___| {version}
                       |___/
Running on {system_info} | CPU: {cpu_count} cores | RAM: {memory_gb} GB
"""
        print(banner)

    def __init__(self, env_file=".env", dispatcher=None, config=None, show_banner=True):
        """
        Initialize a new NotifyQueue application.

        Args:
            env_file: The environment file to load configuration from
            dispatcher: ChannelDispatcher to deliver with. If None, logs deliveries
                over the channels listed in NOTIFY_CHANNELS
            config: QueueConfig to use. If None, reads QUEUE_* variables
            show_banner: Print the startup banner
        """
        if show_banner:
            self.print_banner()

        load_dotenv(env_file)

        self._setup_logging()

        self.database_enabled = os.getenv("ENABLE_DATABASE", "true").lower() == "true"
        if self.database_enabled:
            self._setup_database()
            store = DatabaseJobStore()
        else:
            self.logger.warning("Database integration is disabled - jobs are kept in memory only")
            store = MemoryJobStore()

        self.config = config or QueueConfig.from_env()
        self.dispatcher = dispatcher or self._default_dispatcher()
        self.queue = NotificationQueue(store, self.dispatcher, self.config)

        self._maintenance_tasks = []
        self._stop_event = None

    def _setup_logging(self):
        """Configure logging based on environment variables with file rotation support."""
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_format = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        log_to_file = os.getenv("LOG_TO_FILE", "true").lower() == "true"
        log_file = os.getenv("LOG_FILE", "logs/notifyqueue.log")

        log_rotation_type = os.getenv("LOG_ROTATION_TYPE", "size").lower()  # 'size' or 'time'

        max_bytes = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10 MB default
        backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))

        rotation_when = os.getenv("LOG_ROTATION_WHEN", "midnight").lower()  # 'midnight', 'D', 'H', etc.
        rotation_interval = int(os.getenv("LOG_ROTATION_INTERVAL", "1"))

        date_format = os.getenv("LOG_DATE_FORMAT", "%Y-%m-%d")

        handlers = [logging.StreamHandler()]

        if log_to_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            try:
                if log_rotation_type == "time":
                    file_handler = logging.handlers.TimedRotatingFileHandler(
                        filename=log_file,
                        when=rotation_when,
                        interval=rotation_interval,
                        backupCount=backup_count,
                        encoding='utf-8'
                    )
                    file_handler.suffix = date_format
                else:
                    file_handler = logging.handlers.RotatingFileHandler(
                        filename=log_file,
                        maxBytes=max_bytes,
                        backupCount=backup_count,
                        encoding='utf-8'
                    )

                file_handler.setFormatter(logging.Formatter(log_format))
                handlers.append(file_handler)

            except Exception as e:
                print(f"Warning: Could not setup file logging: {e}")
                print("Falling back to console logging only")

        logging.basicConfig(
            level=getattr(logging, log_level),
            format=log_format,
            handlers=handlers,
            force=True
        )

        self.logger = logging.getLogger("NotifyQueue.Application")

        if log_to_file:
            self.logger.info(f"Logging configured - File: {log_file}, Rotation: {log_rotation_type}")
        else:
            self.logger.info("File logging disabled - Console only")

    def _setup_database(self):
        """Configure database connection."""
        conn_str = os.getenv("DATABASE_URL")
        if not conn_str:
            db_host = os.getenv("DB_HOST", "localhost")
            db_port = os.getenv("DB_PORT", "3306")
            db_name = os.getenv("DB_NAME", "notifyqueue")
            db_user = os.getenv("DB_USER", "root")
            db_pass = os.getenv("DB_PASS", "")
            conn_str = f"mysql+aiomysql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"

        Model.configure(conn_str, pool_pre_ping=True)

    def _default_dispatcher(self):
        channels = [c.strip() for c in os.getenv("NOTIFY_CHANNELS", "email,sms,push").split(",") if c.strip()]
        self.logger.info(f"Using logging dispatcher for channels: {', '.join(channels)}")
        return MultiChannelDispatcher([LoggingSender(channel) for channel in channels])

    async def initialize_database(self):
        """Create database tables."""
        if self.database_enabled:
            await Model.create_tables()

    async def _cleanup_connections(self):
        if self.database_enabled:
            await Model.cleanup()

    async def _scheduled_cleanup(self):
        deleted = await self.queue.cleanup_old()
        self.logger.info(f"Scheduled cleanup removed {deleted} old jobs")

    async def _scheduled_health_check(self):
        health = await self.queue.get_queue_health()
        if health.status == CRITICAL:
            self.logger.warning(f"Notification queue is critical: {'; '.join(health.issues)}")
        else:
            self.logger.info(f"Notification queue is {health.status}")

    def _install_signal_handlers(self, loop):
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self._handle_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform; KeyboardInterrupt still stops run()
                pass

    def _handle_signal(self, signum):
        self.logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.stop()

    def stop(self):
        """Request a graceful shutdown of serve()."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def serve(self):
        """Run the queue service until stop() is called or a signal arrives."""
        self._stop_event = asyncio.Event()
        self._install_signal_handlers(asyncio.get_running_loop())

        await self.initialize_database()
        try:
            self.queue.start_processing()
            self._maintenance_tasks = [
                PeriodicTask("cleanup-old-jobs", self._scheduled_cleanup, self.config.cleanup_interval),
                PeriodicTask("queue-health-check", self._scheduled_health_check, self.config.health_interval),
            ]
            for task in self._maintenance_tasks:
                task.start()

            self.logger.info("Notification queue started. Press Ctrl+C to exit.")
            await self._stop_event.wait()

        finally:
            self.logger.info("Shutting down...")
            for task in self._maintenance_tasks:
                task.stop()
            await self.queue.stop_processing()
            for task in self._maintenance_tasks:
                await task.wait_closed()
            await self._cleanup_connections()

    async def execute(self, operation):
        """Run a single queue operation with connections set up and torn down around it."""
        await self.initialize_database()
        try:
            return await operation(self.queue)
        finally:
            await self._cleanup_connections()

    def run(self):
        """Run the application."""
        try:
            asyncio.run(self.serve())
        except KeyboardInterrupt:
            self.logger.info("Interrupted")
