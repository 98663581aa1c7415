#!/usr/bin/env python3
"""
Lab Decision Engine - Operator Console
Inspect SLA status, run sweeps and evaluate interpretation rules by hand.
"""

import sys
import logging
from datetime import datetime
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

from lab_decision.core.config import settings
from lab_decision.core.database import create_tables, db_manager
from lab_decision.core.exceptions import LabEngineException
from lab_decision.services.store import LabStore
from lab_decision.services.sla_engine import SLAEngine, SLAPolicy
from lab_decision.services.interpretation_engine import InterpretationEngine
from lab_decision.services.seed_rules import seed_example_rules

logger = logging.getLogger(__name__)
console = Console()

SEVERITY_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

SLA_STYLES = {
    "on_time": "green",
    "at_risk": "yellow",
    "breached": "bold red",
    "frozen": "cyan",
}


def configure_logging():
    settings.create_log_directory()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=settings.log_format,
        handlers=[logging.FileHandler(settings.log_file)]
    )


def build_store() -> LabStore:
    return LabStore(company_id=settings.company_id)


def display_welcome():
    """Display welcome message and system information"""

    welcome_text = Text()
    welcome_text.append("🧪 Lab Decision Engine\n", style="bold blue")
    welcome_text.append(f"Version: {settings.app_version}\n", style="green")
    welcome_text.append(f"Environment: {settings.environment}\n", style="yellow")
    welcome_text.append(f"Database: {settings.database_url}\n", style="cyan")
    welcome_text.append(
        f"SLA windows: standard {settings.sla_standard_days}d, express {settings.sla_express_days}d, "
        f"attention at {settings.sla_attention_fraction:.0%}\n",
        style="magenta"
    )

    console.print(Panel(welcome_text, title="[bold]System Status[/bold]", border_style="blue"))


def initialize_database():
    """Initialize database and create tables"""
    console.print("\n[bold blue]Initializing Database...[/bold blue]")

    if not db_manager.test_connection():
        console.print("❌ Database connection failed")
        return False

    create_tables()
    console.print("✅ Database tables created/verified")
    return True


def display_sla_status(engine: SLAEngine):
    """SLA statistics for active samples"""
    stats = engine.get_sla_stats()

    table = Table(title="SLA Statistics (active samples)")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Count", style="magenta", justify="right")

    table.add_row("Active", str(stats.total_active))
    table.add_row("On time", str(stats.on_time))
    table.add_row("At risk", str(stats.at_risk))
    table.add_row("Breached", str(stats.breached))
    table.add_row("Express", str(stats.express))

    console.print(table)


def display_attention(engine: SLAEngine):
    """Samples at risk or breached, most overdue first"""
    samples = engine.get_samples_needing_attention()
    if not samples:
        console.print("No samples need attention.")
        return

    table = Table(title="Samples Needing Attention")
    table.add_column("Code", style="cyan", no_wrap=True)
    table.add_column("Stage", style="white")
    table.add_column("SLA", style="white")
    table.add_column("Received", style="green")
    table.add_column("Due", style="yellow")

    for sample in samples:
        style = SLA_STYLES.get(sample.sla_status.value, "white")
        table.add_row(
            sample.code,
            sample.stage.value,
            f"[{style}]{sample.sla_status.value}[/{style}]",
            sample.received_date.strftime("%Y-%m-%d"),
            sample.due_date.strftime("%Y-%m-%d") if sample.due_date else "N/A",
        )

    console.print(table)


def run_sla_sweep(engine: SLAEngine):
    """Refresh the SLA status of every tracked sample"""
    started = datetime.now()
    result = engine.update_all_sla_statuses()
    elapsed = (datetime.now() - started).total_seconds()

    if result.errors:
        console.print(f"⚠️  SLA sweep: {result.updated} updated, {result.errors} errors ({elapsed:.1f}s)")
    else:
        console.print(f"✅ SLA sweep: {result.updated} updated ({elapsed:.1f}s)")


def evaluate_sample(engine: InterpretationEngine, sample_id: int):
    """Evaluate rules against one sample and print its interpretations"""
    applied = engine.evaluate_and_apply_rules(sample_id)
    if not applied:
        console.print(f"No interpretations apply to sample {sample_id}.")
        return

    table = Table(title=f"Interpretations for sample {sample_id}")
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Severity", style="white")
    table.add_column("Value", style="magenta")
    table.add_column("Message", style="white")

    for item in applied:
        style = SEVERITY_STYLES.get(item.severity.value, "white")
        table.add_row(
            str(item.rule_id),
            f"[{style}]{item.severity.value}[/{style}]",
            item.observed_value or "N/A",
            item.message,
        )

    console.print(table)


def display_rules(engine: InterpretationEngine):
    """Display interpretation rules"""
    rules = engine.get_rules()
    if not rules:
        console.print("No interpretation rules defined.")
        return

    table = Table(title="Interpretation Rules")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Area", style="white")
    table.add_column("Analyte", style="green")
    table.add_column("Condition", style="magenta")
    table.add_column("Scope", style="yellow")
    table.add_column("Active", style="white")

    for rule in rules:
        scope = ", ".join(filter(None, [rule.species, rule.crop_next])) or "any"
        table.add_row(
            str(rule.id),
            rule.area,
            rule.analyte,
            f"{rule.comparator.value} {rule.threshold}",
            scope,
            "✅" if rule.active else "❌",
        )

    console.print(table)


def interactive_menu():
    """Display interactive menu"""
    while True:
        console.print("\n[bold green]Lab Decision Menu:[/bold green]")
        console.print("  1. SLA Statistics")
        console.print("  2. Samples Needing Attention")
        console.print("  3. Run SLA Sweep")
        console.print("  4. Evaluate Sample Interpretations")
        console.print("  5. View Interpretation Rules")
        console.print("  6. Seed Example Rules")
        console.print("  0. Exit")

        try:
            choice = input("\nSelect an option (0-6): ").strip()

            # Engines are cheap and stateless; build them per action
            store = build_store()
            sla_engine = SLAEngine(store, SLAPolicy.from_settings(settings))
            interpretation_engine = InterpretationEngine(store)

            if choice == "1":
                display_sla_status(sla_engine)
            elif choice == "2":
                display_attention(sla_engine)
            elif choice == "3":
                run_sla_sweep(sla_engine)
            elif choice == "4":
                sample_id = int(input("Sample ID: ").strip())
                evaluate_sample(interpretation_engine, sample_id)
            elif choice == "5":
                display_rules(interpretation_engine)
            elif choice == "6":
                created = seed_example_rules(interpretation_engine)
                console.print(f"✅ Created {len(created)} example rules")
            elif choice == "0":
                console.print("\n[bold blue]Goodbye![/bold blue]")
                break
            else:
                console.print("❌ Invalid option. Please select 0-6.")

        except KeyboardInterrupt:
            console.print("\n\n[bold blue]Goodbye![/bold blue]")
            break
        except ValueError:
            console.print("❌ Sample ID must be a number.")
        except LabEngineException as e:
            console.print(f"❌ Error: {e.message}")


def main():
    """Main entry point for the console"""
    configure_logging()
    try:
        display_welcome()

        if not initialize_database():
            console.print("❌ Failed to initialize database. Exiting...")
            sys.exit(1)

        display_sla_status(SLAEngine(build_store(), SLAPolicy.from_settings(settings)))
        interactive_menu()

    except KeyboardInterrupt:
        console.print("\n\n[bold yellow]Shutdown requested...[/bold yellow]")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error in main: {str(e)}")
        console.print(f"❌ Fatal error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
