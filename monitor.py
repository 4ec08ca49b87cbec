import os
import sys
import time
from datetime import datetime

import httpx
from rich import box
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

FEED_URL = os.getenv("FEED_URL", f"http://localhost:{os.getenv('PORT', '3000')}")
POLL_SEC = 1.0


def get_status_table(data):
    table = Table(box=box.ROUNDED, expand=True, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    stream = data.get("stream") or {}
    state = stream.get("state", "?")
    if state == "SUBSCRIBED":
        state_str = f"[green]{state}[/green]"
    elif stream.get("reconnectPending"):
        state_str = f"[yellow]{state} (reconnect pending)[/yellow]"
    else:
        state_str = f"[bold red]{state}[/bold red]"

    price = data.get("priceNative") or 0.0
    mc = data.get("lastMC") or 0

    table.add_row("Build", str(data.get("build", "?")))
    table.add_row("Pair", str(data.get("pairAddress") or "-"))
    table.add_row("Price (SOL)", f"{price:.10f}")
    table.add_row("Market cap", f"${mc:,.0f}")
    table.add_row("Log stream", state_str)
    table.add_row("Subscription", str(stream.get("subscriptionId") or "-"))
    table.add_row("Reconnects", str(stream.get("reconnects", 0)))
    table.add_row("Subscribers", str(data.get("subscribers", 0)))
    table.add_row("Seen signatures", str(data.get("seenSignatures", 0)))
    table.add_row("Classifying", str(data.get("classificationsInFlight", 0)))
    return table


def make_layout():
    layout = Layout()
    layout.split(
        Layout(name="header", size=3),
        Layout(name="main"),
        Layout(name="footer", size=3)
    )
    return layout


def main():
    layout = make_layout()

    layout["header"].update(Panel(f"📡 BUY FEED MONITOR | {FEED_URL}", style="bold white on blue"))
    layout["footer"].update(Panel("Press Ctrl+C to exit", style="dim"))

    with httpx.Client(timeout=3.0) as client, Live(layout, refresh_per_second=1, screen=True, console=Console()):
        while True:
            try:
                response = client.get(f"{FEED_URL}/health")
                response.raise_for_status()
                data = response.json()
                status = f"Last Update: {datetime.now().strftime('%H:%M:%S')}"
                layout["header"].update(Panel(f"📡 BUY FEED | {status}", style="bold white on blue"))
                layout["main"].update(Panel(get_status_table(data), title="Pipeline", border_style="green"))
            except KeyboardInterrupt:
                break
            except (httpx.HTTPError, ValueError) as e:
                layout["main"].update(Panel(f"Waiting for feed... ({e})", title="Status", border_style="yellow"))
            time.sleep(POLL_SEC)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)
