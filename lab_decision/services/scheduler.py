"""
Task Scheduler Service - Periodic task management
Drives the daily SLA sweep and database health checks. The engines themselves
never schedule anything; this loop is one of their external triggers.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass

from ..core.config import settings
from ..core.database import db_manager
from ..core.exceptions import ConfigurationException
from .sla_engine import SLAEngine

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Represents a scheduled task"""
    name: str
    func: Callable
    interval_seconds: int
    next_run: datetime
    enabled: bool = True
    last_run: datetime = None
    last_result: Any = None
    run_count: int = 0
    error_count: int = 0


class TaskScheduler:
    """Scheduler for periodic tasks"""

    def __init__(self, sla_engine_factory: Callable[[], SLAEngine], tick_seconds: float = 10,
                 sweep_start_time: Optional[str] = None):
        self.running = False
        self.tasks: Dict[str, ScheduledTask] = {}
        self.sla_engine_factory = sla_engine_factory
        self.tick_seconds = tick_seconds
        self._loop_task: Optional[asyncio.Task] = None

        # Register default tasks
        self._register_default_tasks(sweep_start_time)

        logger.info("TaskScheduler initialized")

    async def start(self):
        """Start the task scheduler"""
        self.running = True

        # Start the scheduler loop
        self._loop_task = asyncio.create_task(self._scheduler_loop())

        logger.info("TaskScheduler service started")

    async def stop(self):
        """Stop the task scheduler"""
        self.running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("TaskScheduler service stopped")

    def _register_default_tasks(self, sweep_start_time: Optional[str]):
        """Register default scheduled tasks"""

        # SLA sweep - daily unless configured otherwise
        self.add_task(
            "sla_sweep",
            self._run_sla_sweep,
            interval_seconds=settings.sla_sweep_interval_seconds,
            start_time=sweep_start_time
        )

        # Database health check - every 5 minutes
        self.add_task(
            "health_check",
            self._system_health_check,
            interval_seconds=settings.health_check_interval
        )

    def add_task(self, name: str, func: Callable, interval_seconds: int,
                 start_time: str = None, enabled: bool = True):
        """Add a new scheduled task"""

        # Calculate next run time
        now = datetime.now()
        if start_time:
            # Parse time string (HH:MM format)
            try:
                hour, minute = map(int, start_time.split(':'))
                next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
            except ValueError as e:
                raise ConfigurationException(f"Invalid start time '{start_time}' for task '{name}'") from e

            # If time has passed today, schedule for tomorrow
            if next_run <= now:
                next_run += timedelta(days=1)
        else:
            next_run = now + timedelta(seconds=interval_seconds)

        task = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            next_run=next_run,
            enabled=enabled
        )

        self.tasks[name] = task
        logger.info(f"Scheduled task '{name}' added, next run: {next_run}")

    def enable_task(self, name: str):
        """Enable a scheduled task"""
        if name in self.tasks:
            self.tasks[name].enabled = True
            logger.info(f"Task '{name}' enabled")

    def disable_task(self, name: str):
        """Disable a scheduled task"""
        if name in self.tasks:
            self.tasks[name].enabled = False
            logger.info(f"Task '{name}' disabled")

    async def run_now(self, name: str):
        """Run a task immediately, outside its schedule"""
        await self._run_task(self.tasks[name])
        return self.tasks[name].last_result

    async def _scheduler_loop(self):
        """Main scheduler loop"""
        logger.info("Starting task scheduler loop")

        while self.running:
            try:
                now = datetime.now()

                for task in list(self.tasks.values()):
                    if not task.enabled:
                        continue

                    if now >= task.next_run:
                        await self._run_task(task)

                await asyncio.sleep(self.tick_seconds)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in scheduler loop: {str(e)}")
                await asyncio.sleep(self.tick_seconds)

    async def _run_task(self, task: ScheduledTask):
        """Execute a scheduled task"""
        try:
            logger.info(f"Running scheduled task: {task.name}")

            if asyncio.iscoroutinefunction(task.func):
                task.last_result = await task.func()
            else:
                # Engines are synchronous; keep the event loop free while they run
                task.last_result = await asyncio.to_thread(task.func)

            # Update task statistics
            task.last_run = datetime.now()
            task.run_count += 1
            task.next_run = task.last_run + timedelta(seconds=task.interval_seconds)

            logger.info(f"Task '{task.name}' completed successfully")

        except Exception as e:
            logger.error(f"Error running task '{task.name}': {str(e)}")
            task.error_count += 1

            # Still schedule next run
            task.next_run = datetime.now() + timedelta(seconds=task.interval_seconds)

    def _run_sla_sweep(self):
        """Refresh the SLA status of every tracked sample"""
        result = self.sla_engine_factory().update_all_sla_statuses()
        if result.errors:
            logger.warning(f"SLA sweep finished with {result.errors} errors ({result.updated} updated)")
        return result

    def _system_health_check(self):
        """Perform system health checks"""
        healthy = db_manager.test_connection()
        if not healthy:
            logger.warning("Database health check failed")
        else:
            logger.debug("System health check passed")
        return healthy

    def get_task_status(self) -> List[Dict[str, Any]]:
        """Get status of all scheduled tasks"""
        status = []

        for name, task in self.tasks.items():
            status.append({
                'name': name,
                'enabled': task.enabled,
                'next_run': task.next_run.isoformat(),
                'last_run': task.last_run.isoformat() if task.last_run else None,
                'run_count': task.run_count,
                'error_count': task.error_count,
                'interval_seconds': task.interval_seconds
            })

        return status
