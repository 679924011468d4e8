"""
Startup script for the task pipeline services
Runs the API (with the deadline scan and routine reset loops) and the notification worker
as separate processes; with SCHEDULER_BACKEND=celery the loops run in Celery beat instead
"""

import multiprocessing
import subprocess
import sys
import time
import signal
from pathlib import Path
from typing import List

# Add the parent directory to Python path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings, validate_scheduler_settings
from app.utils.errors import ConfigurationError
from app.utils.logging import get_logger

logger = get_logger()

PROJECT_ROOT = str(Path(__file__).parent.parent)


def setup_signal_handlers():
    """Setup signal handlers for graceful shutdown"""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def run_command(name: str, command: List[str]):
    """Run one service until it exits"""
    try:
        logger.info(f"Starting {name} process")
        subprocess.run(command, check=True, cwd=PROJECT_ROOT)
    except subprocess.CalledProcessError as e:
        logger.error(f"{name} process failed with return code {e.returncode}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info(f"{name} process interrupted by user")
    except Exception as e:
        logger.error(f"Unexpected error in {name} process: {e}")
        sys.exit(1)


def service_commands() -> dict:
    commands = {
        "FastAPI": [
            sys.executable,
            "-m",
            "uvicorn",
            "app.main:app",
            "--host",
            "0.0.0.0",
            "--port",
            "8000",
        ],
        "NotificationWorker": [
            sys.executable,
            "-m",
            "app.tasks.background.notification_worker",
        ],
    }
    if settings.SCHEDULER_BACKEND == "celery":
        commands["CeleryWorker"] = [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "app.celery",
            "worker",
            "--loglevel=info",
            "--pool=solo",
        ]
        commands["CeleryBeat"] = [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "app.celery",
            "beat",
            "--loglevel=info",
        ]
    return commands


def check_broker_connection():
    """Check if the message broker is accessible"""
    try:
        from kombu import Connection

        with Connection(settings.broker_url, connect_timeout=5) as connection:
            connection.ensure_connection(max_retries=1)
        logger.info("Broker connection successful")
        return True
    except Exception as e:
        logger.error(f"Broker connection failed: {e}")
        logger.error("Please ensure the broker (Redis) is running")
        return False


def monitor_processes(processes):
    """Monitor running processes and handle failures"""
    logger.info("Starting process monitoring")

    while True:
        for process in processes:
            if not process.is_alive():
                exit_code = process.exitcode
                logger.error(
                    f"{process.name} process died unexpectedly with exit code: {exit_code}"
                )

                # Terminate remaining processes
                terminate_processes(processes)
                sys.exit(1)

        time.sleep(1)


def terminate_processes(processes):
    """Gracefully terminate all processes"""
    logger.info("Initiating graceful shutdown of all services")

    # Send termination signal to all processes
    for process in processes:
        if process.is_alive():
            logger.info(f"Terminating {process.name} process")
            process.terminate()

    # Wait for graceful shutdown
    for process in processes:
        try:
            process.join(timeout=10)
            if process.is_alive():
                logger.warning(
                    f"{process.name} did not terminate gracefully, force killing"
                )
                process.kill()
                process.join()
            else:
                logger.info(f"{process.name} terminated successfully")
        except Exception as e:
            logger.error(f"Error terminating {process.name}: {e}")


def main():
    """Main function to start and manage the services"""
    multiprocessing.freeze_support()

    setup_signal_handlers()

    logger.info("=" * 60)
    logger.info(f"Starting {settings.NAME} ({settings.SCHEDULER_BACKEND} scheduler)")
    logger.info("=" * 60)
    logger.info("Press Ctrl+C to stop all services")

    try:
        validate_scheduler_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.message}")
        sys.exit(1)

    if not check_broker_connection():
        logger.error("Cannot start services without broker connection")
        sys.exit(1)

    processes = []

    try:
        for name, command in service_commands().items():
            process = multiprocessing.Process(
                target=run_command, args=(name, command), name=name, daemon=False
            )
            process.start()
            processes.append(process)

        logger.info("All services started successfully")
        logger.info("FastAPI server: http://localhost:8000")
        logger.info("FastAPI documentation: http://localhost:8000/docs")
        logger.info("-" * 60)

        monitor_processes(processes)

    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    except Exception as e:
        logger.error(f"Unexpected error in main process: {e}")
    finally:
        terminate_processes(processes)
        logger.info("All services stopped successfully")


if __name__ == "__main__":
    main()
