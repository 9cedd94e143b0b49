# cli.py
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table

from sdk.pygiftshop import GiftShopClient

console = Console()
c = GiftShopClient(base_url=os.environ.get("GIFTSHOP_URL", "http://127.0.0.1:8085"))

status_message = "Ready"
product_cache: List[Dict[str, Any]] = []
category_cache: List[Dict[str, Any]] = []

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})

STATUS_STYLES = {"live": "green", "draft": "yellow", "out_of_stock": "red"}


# ---------------------------
# Display helpers
# ---------------------------
def _rs(value: Any) -> str:
    if value is None:
        return "-"
    return f"Rs. {float(value):g}"


def show_products(products: List[Dict[str, Any]], title: str = "🧸 Products"):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, header_style="bold cyan", title_style="bold magenta", show_lines=True)
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Price", justify="right", width=12)
    table.add_column("Offer", justify="right", width=18)
    table.add_column("Status", width=14)
    table.add_column("Tags", width=30)

    for p in products:
        offer = "-"
        if p.get("has_offer"):
            offer = f"{_rs(p.get('offer_price'))} ({p.get('discount_percent', 0)}% OFF)"
        status = p.get("status", "N/A")
        style = STATUS_STYLES.get(status, "white")
        table.add_row(
            p.get("id", "N/A")[:12],
            p.get("name", "N/A"),
            _rs(p.get("price")),
            offer,
            f"[{style}]{status.replace('_', ' ').upper()}[/{style}]",
            ", ".join(p.get("tags", [])),
        )
    console.print(table)


def show_product(p: Dict[str, Any]):
    lines = [
        f"[bold]{p.get('name')}[/bold]",
        p.get("description", ""),
        f"Price: {_rs(p.get('price'))}",
    ]
    if p.get("has_offer"):
        lines.append(f"[green]Offer: {_rs(p.get('offer_price'))} ({p.get('discount_percent')}% OFF)[/green]")
    if p.get("tags"):
        lines.append(f"Tags: {', '.join(p['tags'])}")
    for i, url in enumerate(p.get("images", [])):
        lines.append(f"[dim]{'main' if i == 0 else 'image'}: {url}[/dim]")
    console.print(Panel("\n".join(lines), title=f"🧸 {p.get('id', '')}", border_style="magenta"))


def show_categories(categories: List[Dict[str, Any]]):
    if not categories:
        console.print("[italic yellow]No categories[/italic yellow]")
        return
    table = Table(title="🏷️ Categories", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Slug", width=20)
    for cat in categories:
        table.add_row(str(cat.get("display_order", 0)), cat.get("id", "")[:12], cat.get("name", ""), cat.get("slug", ""))
    console.print(table)


def show_stats(stats: Dict[str, int]):
    console.print(Panel.fit(
        f"Total: [bold]{stats.get('total', 0)}[/bold]   "
        f"[green]Live: {stats.get('live', 0)}[/green]   "
        f"[yellow]Pending approval: {stats.get('draft', 0)}[/yellow]   "
        f"[red]Out of stock: {stats.get('out_of_stock', 0)}[/red]",
        title="📊 Dashboard", border_style="cyan",
    ))


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


def _error_text(e: Exception) -> str:
    if isinstance(e, requests.exceptions.HTTPError) and e.response is not None:
        try:
            detail = e.response.json().get("detail")
        except ValueError:
            detail = e.response.text
        if isinstance(detail, dict):
            detail = detail.get("message", detail)
        if e.response.status_code in (401, 403):
            return f"{detail} (please log in with an admin or staff account)"
        return f"{detail}"
    return str(e)


# ---------------------------
# API wrapper
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """
    Calls fn(*args, **kwargs) behind a spinner; input is blocked until it returns,
    so an action cannot be submitted twice. Returns None on failure.
    """
    global status_message
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), transient=True) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)

        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except (OSError, ValueError) as e:
        status_message = f"Error: {_error_text(e)}"
        console.print(show_status(status_message, False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def get_product_completer():
    return WordCompleter([p.get("id", "") for p in product_cache if p.get("id")], ignore_case=True)


def get_category_completer():
    return WordCompleter(["all"] + [cat["id"] for cat in category_cache], ignore_case=True)


def get_tag_completer():
    tags = try_api(c.list_tags) or []
    return WordCompleter(["all"] + tags, ignore_case=True, sentence=True)


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def ask_float(message: str, default: Optional[float] = None) -> Optional[float]:
    while True:
        raw = Prompt.ask(message, default="" if default is None else str(default))
        if raw == "" and default is None:
            return None
        try:
            return float(raw)
        except ValueError:
            console.print("[red]Please enter a valid number.[/red]")


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)
    who = "guest"
    if c.access_token:
        me = try_api(c.me)
        if me and me.get("profile"):
            who = f"{me['profile'].get('full_name') or me['user'].get('email')} ({me['profile'].get('role')})"
    header.add_row("🧸 Gift Shop", f"[bold blue]Catalog console[/bold blue] [dim]{who}[/dim]",
                   f"[dim]{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}[/dim]")
    return Panel(header, style="bold blue")


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, product_cache, category_cache

    console.clear()
    console.print(create_header())
    category_cache = try_api(c.list_categories) or []

    while True:
        if status_message:
            console.print(show_status(status_message, not status_message.startswith("Error")))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        options = [
            ("1", "🧸 Browse products", "7", "📋 Admin: list products"),
            ("2", "ℹ️ Product details", "8", "➕ Admin: add product"),
            ("3", "💬 WhatsApp order link", "9", "✅ Admin: approve"),
            ("4", "🏷️ Categories", "10", "📦 Admin: stock toggle"),
            ("5", "🔑 Log in", "11", "🗑️ Admin: delete product"),
            ("6", "🚪 Log out", "12", "📊 Admin: dashboard"),
            ("", "", "q", "👋 Quit"),
        ]
        for row in options:
            menu_table.add_row(*row)
        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 13)] + ["q", "quit", "exit"]),
        ).strip()

        if choice == "1":
            category = prompt_with_autocomplete("Category", completer=get_category_completer(), default="all")
            tag = prompt_with_autocomplete("Tag", completer=get_tag_completer(), default="all")
            res = try_api(c.list_products, category, tag, success_msg="Products loaded")
            if res is not None:
                if res.get("error"):
                    console.print(f"[yellow]Could not load products right now: {res['error']}[/yellow]")
                product_cache = res.get("items", [])
                show_products(product_cache)

        elif choice == "2":
            pid = prompt_with_autocomplete("Product ID", completer=get_product_completer())
            resp = try_api(c.get_product, pid)
            if resp:
                show_product(resp)

        elif choice == "3":
            pid = prompt_with_autocomplete("Product ID (blank for general enquiry)", completer=get_product_completer())
            url = try_api(c.order_link, pid or None, success_msg="Order link ready")
            if url:
                console.print(Panel(url, title="💬 Open on WhatsApp", border_style="green"))

        elif choice == "4":
            category_cache = try_api(c.list_categories) or []
            show_categories(category_cache)

        elif choice == "5":
            email = prompt_with_autocomplete("Email")
            password = Prompt.ask("Password", password=True)
            resp = try_api(c.login, email, password, success_msg=f"Signed in as {email}")
            if resp:
                console.print(create_header())

        elif choice == "6":
            if c.access_token:
                try_api(c.logout, success_msg="Signed out")

        elif choice == "7":
            status = prompt_with_autocomplete(
                "Status", completer=WordCompleter(["all", "draft", "live", "out_of_stock"]), default="all")
            res = try_api(c.admin_list_products, status, success_msg="Admin product list loaded")
            if res is not None:
                product_cache = res.get("items", [])
                show_products(product_cache, title=f"📋 Products ({status})")

        elif choice == "8":
            name = prompt_with_autocomplete("Product name")
            description = prompt_with_autocomplete("Description")
            price = ask_float("💰 Price (Rs.)", default=0.0)
            offer = ask_float("🎉 Offer price (Rs., blank for none)")
            category = prompt_with_autocomplete("Category ID (blank for none)", completer=get_category_completer())
            tags = [t.strip() for t in prompt_with_autocomplete("Tags (comma separated)", completer=get_tag_completer()).split(",") if t.strip()]
            images: List[str] = []
            while True:
                path = prompt_with_autocomplete("Image file to upload (blank to finish)")
                if not path:
                    break
                url = try_api(c.upload_image, path, success_msg=f"Uploaded {os.path.basename(path)}")
                if url:
                    images.append(url)
            if not images:
                console.print(show_status("Please upload at least one image", False))
                continue
            resp = try_api(c.create_product, name, description, price, images, offer,
                           category if category and category != "all" else None, tags,
                           success_msg=f"'{name}' saved as draft")
            if resp:
                show_product(resp)

        elif choice == "9":
            pid = prompt_with_autocomplete("Product ID to approve", completer=get_product_completer())
            resp = try_api(c.approve_product, pid, success_msg=f"Product {pid} is live")
            if resp:
                show_products([resp])

        elif choice == "10":
            pid = prompt_with_autocomplete("Product ID", completer=get_product_completer())
            in_stock = Confirm.ask("Is it in stock?")
            resp = try_api(c.set_stock, pid, in_stock, success_msg=f"Stock updated for {pid}")
            if resp:
                show_products([resp])

        elif choice == "11":
            pid = prompt_with_autocomplete("Product ID to delete", completer=get_product_completer())
            if Confirm.ask("[red]Are you sure you want to delete this product?[/red]"):
                try_api(c.delete_product, pid, success_msg=f"Product {pid} deleted")

        elif choice == "12":
            resp = try_api(c.dashboard)
            if resp:
                show_stats(resp.get("stats", {}))

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Thank you for visiting! 🧸[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
