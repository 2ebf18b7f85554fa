#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
"""
CLI for kvsim.

Commands:
    kvsim serve                 Start the simulation API server
    kvsim run                   Run a simulation headless and print each tick

Usage:
    # API server
    kvsim serve --port 8000

    # Single prompt, Pinned Prefix, 12 ticks
    kvsim run --prompt "You are a helpful assistant." --policy pinned-prefix --ticks 12

    # Continuous batching with two prompts
    kvsim run --prompt "Hello!" --prompt "Explain KV cache eviction." --ticks 30
"""

import argparse
import json
import sys

from .config import (
    DEFAULT_BLOCK_CAPACITY,
    DEFAULT_BLOCK_COUNT,
    DEFAULT_RECENT_N_WINDOW,
    DEFAULT_SINGLE_PROMPT,
    EvictionPolicy,
    SimulationConfig,
)


def _has_cli_overrides(args) -> bool:
    """Check if CLI args contain non-default values that should be saved."""
    if getattr(args, "port", None) is not None and args.port != 8000:
        return True
    if getattr(args, "host", None) is not None and args.host != "127.0.0.1":
        return True
    if getattr(args, "log_level", None) is not None and args.log_level != "info":
        return True
    return False


def serve_command(args):
    """Start the simulation API server."""
    import uvicorn

    from .logging_config import configure_file_logging, configure_logging
    from .settings import init_settings

    # Initialize global settings first (to get log_level from file if not specified)
    settings = init_settings(base_path=args.base_path, cli_args=args)

    errors = settings.validate()
    if errors:
        for error in errors:
            print(f"Configuration error: {error}")
        sys.exit(1)

    configure_logging(
        level=settings.server.log_level,
        format_style=settings.logging.format_style,
    )

    settings.ensure_directories()

    if _has_cli_overrides(args):
        try:
            settings.save()
            print("Saved CLI arguments to settings.json")
        except OSError as e:
            print(f"Warning: Failed to save settings: {e}")

    if settings.logging.file_logging:
        log_dir = settings.logging.get_log_dir(settings.base_path)
        configure_file_logging(
            log_dir=log_dir,
            level=settings.server.log_level,
            retention_days=settings.logging.retention_days,
        )
        print(f"Log directory: {log_dir}")

    from .server import app, init_server

    print(f"Base path: {settings.base_path}")
    print(
        f"Simulation defaults: {settings.simulation.block_count}x"
        f"{settings.simulation.block_capacity} blocks, "
        f"policy={settings.simulation.eviction_policy}"
    )

    init_server(
        api_key=settings.auth.api_key,
        global_settings=settings,
        cors_origins=settings.server.cors_origins,
    )

    print(f"Starting server at http://{settings.server.host}:{settings.server.port}")
    # uvicorn has no "trace" level
    uvicorn_level = settings.server.log_level.lower()
    if uvicorn_level == "trace":
        uvicorn_level = "debug"
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=uvicorn_level,
    )


def _config_from_args(args) -> SimulationConfig:
    prompts = tuple(args.prompt) if args.prompt else (DEFAULT_SINGLE_PROMPT,)
    return SimulationConfig(
        block_count=args.block_count,
        block_capacity=args.block_capacity,
        eviction_policy=args.policy,
        recent_n_window=args.recent_n,
        prompt_count=len(prompts),
        prompt_texts=prompts,
    )


def _format_tick(state) -> str:
    from .cache.slots import block_range
    from .cache.views import block_views, owner_label
    from .utils.formatting import format_block_row

    capacity = state.geometry.block_capacity
    rows = []
    for view in block_views(state.slots, state.geometry):
        statuses = [state.slots[i].status.value for i in block_range(view.index, capacity)]
        rows.append(format_block_row(statuses, owner_label(view.owner_id)))

    written = ",".join(state.slots[i].token for i in state.last_written)
    line = f"{state.tick:4d} {state.phase.value:<12} {' '.join(rows)}"
    if written:
        line += f"  +{written}"
    if state.last_evicted:
        line += f"  evicted={list(state.last_evicted)}"
    return line


def run_command(args):
    """Run a simulation headless."""
    from .cache.stats import compute_slot_stats
    from .logging_config import configure_logging
    from .simulator import reset, step
    from .utils.memory import ModelShape, estimate_cache_memory

    configure_logging(level=args.log_level, include_session_id=False)

    try:
        config = _config_from_args(args)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Configuration error: {error}")
        sys.exit(1)

    state = reset(config)
    for _ in range(args.ticks):
        state = step(state)
        if not args.json:
            print(_format_tick(state))

    stats = compute_slot_stats(
        state.slots,
        writes=state.write_clock,
        evictions=state.eviction_count,
        dropped_writes=state.dropped_write_count,
    )
    shape = ModelShape(layers=args.layers, heads=args.heads, head_dim=args.head_dim)
    memory = estimate_cache_memory(stats.used, stats.total_slots, shape)

    if args.json:
        data = state.to_dict()
        data["stats"] = stats.to_dict()
        data["memory"] = memory
        print(json.dumps(data, indent=2))
        return

    print(
        f"writes={stats.writes} evictions={stats.evictions} "
        f"dropped={stats.dropped_writes} utilization={stats.utilization:.0%} "
        f"kv_memory={memory['used']} of {memory['reserved']}"
    )


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="kvsim - paged KV cache simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the simulation API server")
    serve_parser.add_argument("--host", type=str, default=None, help="Host to bind (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind (default: 8000)")
    serve_parser.add_argument(
        "--log-level",
        type=str,
        choices=["trace", "debug", "info", "warning", "error"],
        default=None,
        help="Log level (default: info). trace includes request bodies",
    )
    serve_parser.add_argument(
        "--log-format",
        type=str,
        choices=["standard", "json"],
        default=None,
        help="Log format (default: standard)",
    )
    serve_parser.add_argument(
        "--base-path",
        type=str,
        default=None,
        help="Base directory for kvsim data (default: ~/.kvsim)",
    )
    serve_parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key for authentication (optional)",
    )

    # Run command
    run_parser = subparsers.add_parser("run", help="Run a simulation and print each tick")
    run_parser.add_argument(
        "--prompt",
        action="append",
        default=None,
        help="Prompt text; repeat for continuous batching (up to 4)",
    )
    run_parser.add_argument(
        "--policy",
        type=str,
        choices=[p.value for p in EvictionPolicy],
        default=EvictionPolicy.SLIDING_WINDOW.value,
        help="Eviction policy (default: sliding-window)",
    )
    run_parser.add_argument(
        "--block-count", type=int, default=DEFAULT_BLOCK_COUNT,
        help=f"Number of blocks (default: {DEFAULT_BLOCK_COUNT})",
    )
    run_parser.add_argument(
        "--block-capacity", type=int, default=DEFAULT_BLOCK_CAPACITY,
        help=f"Slots per block (default: {DEFAULT_BLOCK_CAPACITY})",
    )
    run_parser.add_argument(
        "--recent-n", type=int, default=DEFAULT_RECENT_N_WINDOW,
        help=f"Recent-N window size (default: {DEFAULT_RECENT_N_WINDOW})",
    )
    run_parser.add_argument("--ticks", type=int, default=40, help="Ticks to run (default: 40)")
    run_parser.add_argument("--json", action="store_true", help="Print the final snapshot as JSON")
    run_parser.add_argument("--layers", type=int, default=32, help="Model layers for the memory estimate")
    run_parser.add_argument("--heads", type=int, default=32, help="KV heads for the memory estimate")
    run_parser.add_argument("--head-dim", type=int, default=128, help="Head dimension for the memory estimate")
    run_parser.add_argument(
        "--log-level",
        type=str,
        choices=["trace", "debug", "info", "warning", "error"],
        default="warning",
        help="Log level (default: warning)",
    )

    args = parser.parse_args()

    if args.command == "serve":
        serve_command(args)
    elif args.command == "run":
        run_command(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
