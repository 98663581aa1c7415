#!/usr/bin/env python3
"""
Lab Decision Engine - Production Service Runner
Runs the REST API and the periodic SLA sweep without user interaction.
"""

import asyncio
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import Optional

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from lab_decision.core.config import settings
from lab_decision.core.database import create_tables, db_manager
from lab_decision.api.rest_api import app
from lab_decision.services.store import LabStore
from lab_decision.services.sla_engine import SLAEngine, SLAPolicy
from lab_decision.services.scheduler import TaskScheduler

console = Console()
logger = logging.getLogger(__name__)


def build_sla_engine() -> SLAEngine:
    """Fresh engine per sweep; nothing is shared between runs"""
    return SLAEngine(LabStore(company_id=settings.company_id), SLAPolicy.from_settings(settings))


class LabDecisionService:
    """Production service manager for the Lab Decision Engine"""

    def __init__(self):
        self.task_scheduler: Optional[TaskScheduler] = None
        self.api_server_thread: Optional[threading.Thread] = None
        self.running = False

        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        logger.info("Lab Decision service initialized")

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.running = False

    async def start_services(self):
        """Start all services"""
        try:
            console.print("\n[bold blue]🧪 Starting Lab Decision services...[/bold blue]")

            await self._initialize_database()
            await self._start_api_server()
            await self._start_task_scheduler()
            self._display_service_status()

            self.running = True
            console.print("\n[bold green]✅ All services started successfully![/bold green]")

            await self._run_services()

        except Exception as e:
            logger.error(f"Failed to start services: {str(e)}")
            console.print(f"[bold red]❌ Failed to start services: {str(e)}[/bold red]")
            await self.stop_services()
            sys.exit(1)

    async def _initialize_database(self):
        """Initialize database and create tables"""
        console.print("📀 Initializing database...")

        if not db_manager.test_connection():
            raise RuntimeError("Database connection failed")

        create_tables()

        console.print("✅ Database initialized successfully")
        logger.info("Database initialized and tables created")

    async def _start_api_server(self):
        """Start REST API server in a separate thread"""
        console.print(f"🚀 Starting REST API server on {settings.api_host}:{settings.api_port}...")

        def run_api_server():
            uvicorn.run(
                app,
                host=settings.api_host,
                port=settings.api_port,
                log_level=settings.log_level.lower(),
                access_log=not settings.is_production
            )

        self.api_server_thread = threading.Thread(target=run_api_server, daemon=True)
        self.api_server_thread.start()

        # Give the API server a moment to start
        await asyncio.sleep(2)

        console.print(f"✅ REST API server started on http://{settings.api_host}:{settings.api_port}")
        logger.info(f"REST API server started on {settings.api_host}:{settings.api_port}")

    async def _start_task_scheduler(self):
        """Start task scheduler for the periodic SLA sweep"""
        console.print("⏰ Starting task scheduler...")

        self.task_scheduler = TaskScheduler(build_sla_engine, sweep_start_time=settings.sla_sweep_start_time)
        await self.task_scheduler.start()

        console.print("✅ Task scheduler started")
        logger.info("Task scheduler service started")

    def _display_service_status(self):
        """Display current service status"""
        status_text = Text()
        status_text.append("🧪 Lab Decision Engine - Production Mode\n\n", style="bold blue")
        status_text.append(f"Version: {settings.app_version}\n", style="green")
        status_text.append(f"Environment: {settings.environment}\n", style="yellow")
        status_text.append(f"Database: {settings.database_url}\n", style="cyan")
        status_text.append(f"REST API: http://{settings.api_host}:{settings.api_port}\n", style="cyan")
        status_text.append(f"SLA sweep every: {settings.sla_sweep_interval_seconds}s\n", style="magenta")
        status_text.append(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n", style="white")

        panel = Panel(
            status_text,
            title="[bold]Service Status[/bold]",
            border_style="green"
        )

        console.print(panel)

    async def _run_services(self):
        """Keep services running until shutdown signal received"""
        try:
            console.print("\n[bold cyan]🔄 Services are running... Press Ctrl+C to stop[/bold cyan]")

            while self.running:
                if self.task_scheduler:
                    for task in self.task_scheduler.get_task_status():
                        logger.debug(f"Task status: {task}")
                await asyncio.sleep(30)

        finally:
            await self.stop_services()

    async def stop_services(self):
        """Stop all services gracefully"""
        console.print("\n[bold yellow]🛑 Stopping services...[/bold yellow]")

        if self.task_scheduler:
            await self.task_scheduler.stop()
            console.print("✅ Task scheduler stopped")

        console.print("[bold green]✅ All services stopped gracefully[/bold green]")
        logger.info("Services stopped gracefully")


async def main():
    """Main entry point for production service"""

    # Configure logging for production
    settings.create_log_directory()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=settings.log_format,
        handlers=[
            logging.FileHandler(settings.log_file),
            logging.StreamHandler() if settings.is_development else logging.NullHandler()
        ]
    )

    service = LabDecisionService()
    await service.start_services()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\n[bold blue]Service stopped.[/bold blue]")
    except Exception as e:
        console.print(f"[bold red]Fatal error: {str(e)}[/bold red]")
