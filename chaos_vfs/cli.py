#!/usr/bin/env python3
"""
Chaos VFS command line

Usage:
    python -m chaos_vfs serve                 # Run the API and chaos scheduler
    python -m chaos_vfs tree                  # Show the remote hierarchy
    python -m chaos_vfs escalation [--set N]  # Show (or raise) the escalation record
    python -m chaos_vfs respawn-check         # Trigger a resurrection sweep
    python -m chaos_vfs worker                # Trigger one maintenance cycle
    python -m chaos_vfs rebuild-index         # Repair parent indexes in the configured store
"""
import argparse
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from chaos_vfs.client import VFSClient, VFSClientError
from chaos_vfs.config import get_config
from chaos_vfs.error_logging import configure_logging
from chaos_vfs.metadata import MetadataRepository
from chaos_vfs.storage import create_object_store

console = Console()


def _label(node) -> str:
    chaos = node.get('chaos_metadata') or {}
    icon = "📁" if node.get('type') == 'folder' else "📄"
    label = f"{icon} {node['name']}"
    if chaos.get('original_name') and chaos['original_name'] != node['name']:
        label += f" [dim](was {chaos['original_name']})[/dim]"
    if len(chaos.get('quantum_states') or []) > 1:
        label += f" [magenta]⟨{len(chaos['quantum_states'])} states⟩[/magenta]"
    if chaos.get('resurrection_count'):
        label += f" [yellow]↻{chaos['resurrection_count']}[/yellow]"
    return label


def render_tree(nodes) -> Tree:
    root = Tree("[bold]/[/bold]")
    stack = [(root, nodes)]
    while stack:
        branch, children = stack.pop()
        for node in children:
            sub = branch.add(_label(node))
            if node.get('children'):
                stack.append((sub, node['children']))
    return root


def render_escalation(record) -> Table:
    table = Table(title="Escalation")
    table.add_column("Level", style="bold red")
    table.add_column("Interactions")
    table.add_column("Last updated", style="dim")
    table.add_row(str(record.get('level', 0)), str(record.get('interactions', 0)),
                  str(record.get('last_updated') or '-'))
    return table


def render_report(report) -> Table:
    table = Table(title="Chaos maintenance cycle")
    table.add_column("Pass")
    table.add_column("Result", justify="right")
    table.add_row("Escalation level", str(report.get('escalation_level', 0)))
    if report.get('skipped'):
        table.add_row("Skipped", "yes")
    table.add_row("Resurrected", str(len(report.get('resurrected', []))))
    table.add_row("Mutated", str(report.get('mutated', 0)))
    table.add_row("Quantum states generated", str(report.get('states_generated', 0)))
    table.add_row("Purged", str(len(report.get('purged', []))))
    table.add_row("Errors", str(report.get('errors', 0)))
    return table


def cmd_serve(args):
    from chaos_vfs.api import run_server

    config = get_config(args.env)
    if args.port:
        config.PORT = args.port
    run_server(config)
    return 0


def cmd_tree(args, client):
    console.print(render_tree(client.tree()))
    return 0


def cmd_escalation(args, client):
    record = client.update_escalation(interactions=args.set) if args.set is not None \
        else client.get_escalation()
    console.print(render_escalation(record))
    return 0


def cmd_respawn_check(args, client):
    result = client.check_respawns()
    if not result.get('count'):
        console.print("[dim]Nothing rose from the graveyard.[/dim]")
        return 0
    body = "\n".join(result.get('respawned', []))
    if result.get('message'):
        body += f"\n\n[italic]{result['message']}[/italic]"
    console.print(Panel(body, title=f"Respawned {result['count']}", border_style="yellow"))
    return 0


def cmd_worker(args, client):
    console.print(render_report(client.run_worker()))
    return 0


def cmd_rebuild_index(args):
    config = get_config(args.env)
    repository = MetadataRepository(create_object_store(config))
    result = repository.rebuild_indexes(config.CHAOS.pass_limit)
    console.print(f"[green]Rewrote {result['rewritten']} index entries, "
                  f"removed {result['removed']} stale ones.[/green]")
    return 0


REMOTE_COMMANDS = {
    'tree': cmd_tree,
    'escalation': cmd_escalation,
    'respawn-check': cmd_respawn_check,
    'worker': cmd_worker,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chaos_vfs", description="Chaos VFS service and operator tools")
    parser.add_argument("--url", help="API base URL (default: $VFS_URL or http://localhost:8010)")
    parser.add_argument("--api-key", help="Shared API key (default: $VFS_API_KEY)")
    parser.add_argument("--env", help="Configuration environment (development, production, test)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API with the chaos scheduler")
    serve.add_argument("--port", type=int, help="Override VFS_PORT")

    sub.add_parser("tree", help="Show the full hierarchy")
    escalation = sub.add_parser("escalation", help="Show or raise the escalation record")
    escalation.add_argument("--set", type=int, help="Report an interaction total (never lowers it)")
    sub.add_parser("respawn-check", help="Run a resurrection sweep")
    sub.add_parser("worker", help="Run one chaos maintenance cycle")
    sub.add_parser("rebuild-index", help="Rewrite parent indexes from canonical records")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config(args.env)
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    if args.command == 'serve':
        return cmd_serve(args)
    if args.command == 'rebuild-index':
        return cmd_rebuild_index(args)

    client = VFSClient(base_url=args.url, api_key=args.api_key)
    try:
        return REMOTE_COMMANDS[args.command](args, client)
    except VFSClientError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
