# pgslower/cli.py - Command-line interface
"""
Command-line interface for the slow PostgreSQL transaction tracer.
"""

import click
import sys
import logging

from pgslower.collector.session_tracker import TrackingMode
from pgslower.errors import (
    ConfigurationError,
    EventFeedError,
    FeedDisconnected,
    InstrumentationUnavailable,
    InvalidThreshold,
)
from pgslower.utils.logger import setup_logging
from pgslower.utils.config import Config, EngineConfig
from pgslower.utils.helpers import (
    check_prerequisites,
    get_process_binary,
    get_process_name,
    has_usdt_probes,
    validate_pid,
)


logger = logging.getLogger(__name__)

EXIT_FEED_ERROR = 1
EXIT_NO_INSTRUMENTATION = 3


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']))
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.pass_context
def cli(ctx, log_level, log_file):
    """
    Slow PostgreSQL transaction tracer

    Reports transactions (or single queries) slower than a threshold,
    broken down into parse, plan, rewrite and execute phases.
    """
    ctx.ensure_object(dict)

    setup_logging(level=log_level, log_file=log_file)

    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = log_file


def output_options(f):
    """Options shared by every command that runs the engine"""
    options = [
        click.option('--config', 'config_file', type=click.Path(exists=True), help='Configuration file'),
        click.option('--max-active', type=int, help='Maximum transactions buffered at once'),
        click.option('--workers', type=int, help='Worker threads (events are sharded by session)'),
        click.option('--output-format', type=click.Choice(['stdout', 'json']), help='Output format'),
        click.option('--output', type=click.Path(), help='Output file (for JSON format)'),
        click.option('--no-color', is_flag=True, help='Disable colored output'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def live_options(f):
    """Options for commands that attach to a running server"""
    options = [
        click.option('--pid', type=int, help='Backend process ID to trace'),
        click.option('--binary', type=click.Path(exists=True), help='postgres binary (traces every backend)'),
        click.option('--duration', type=int, help='Duration to run tracer (seconds)'),
        click.option('--prometheus-port', type=int, help='Expose engine counters on this port'),
        click.option('--record', type=click.Path(), help='Also record raw events to a replay file'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def load_settings(threshold_ms, config_file=None, max_active=None, workers=None,
                  output_format=None, output=None, no_color=False):
    """
    Load configuration, apply CLI overrides and validate the engine settings.

    Returns:
        Tuple of (Config, EngineConfig)
    """
    cfg = Config(config_file)

    cfg.set('engine.threshold_ms', threshold_ms)
    if max_active is not None:
        cfg.set('engine.max_active', max_active)
    if workers is not None:
        cfg.set('engine.workers', workers)
    if output_format:
        cfg.set('output.format', output_format)
    if output:
        cfg.set('output.json_file', output)
    if no_color:
        cfg.set('output.colors', False)

    try:
        engine_cfg = EngineConfig.from_config(cfg)
    except InvalidThreshold as e:
        raise click.BadParameter(str(e), param_hint='THRESHOLD_MS')
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    return cfg, engine_cfg


class Pipeline:
    """
    Engine plus its output sinks, built from validated settings.
    """

    def __init__(self, cfg: Config, engine_cfg: EngineConfig, mode: TrackingMode,
                 prometheus_port=None):
        from pgslower.collector.dispatcher import EventDispatcher
        from pgslower.collector.session_tracker import build_engine
        from pgslower.exporters.json_exporter import JSONExporter
        from pgslower.exporters.stdout import StdoutExporter

        self.cfg = cfg
        self.engine_cfg = engine_cfg
        use_colors = bool(cfg.get('output.colors', True))

        sinks = []
        self.stdout = None
        self.json = None
        if cfg.get('output.format') == 'json':
            self.json = JSONExporter(threshold_ns=engine_cfg.threshold_ns)
            sinks.append(self.json)
        else:
            self.stdout = StdoutExporter(use_colors=use_colors)
            sinks.append(self.stdout)

        self.prometheus = None
        port = prometheus_port or cfg.get('output.prometheus_port')
        if port:
            from pgslower.exporters.prometheus import PrometheusExporter
            self.prometheus = PrometheusExporter(port)
            sinks.append(self.prometheus)

        self.tracker = build_engine(
            engine_cfg.threshold_ns,
            max_active=engine_cfg.max_active,
            mode=mode,
            sinks=sinks,
        )

        self.dispatcher = None
        if engine_cfg.workers > 1:
            self.dispatcher = EventDispatcher(
                self.tracker.on_event,
                workers=engine_cfg.workers,
                queue_size=engine_cfg.queue_size,
            )

        self.stats_printer = StdoutExporter(use_colors=use_colors, stream=sys.stderr)
        self.events_seen = 0

    def start(self):
        if self.prometheus:
            self.prometheus.start()
        if self.dispatcher:
            self.dispatcher.start()

    def on_event(self, event):
        if self.dispatcher:
            self.dispatcher.submit(event)
        else:
            self.tracker.on_event(event)

        self.events_seen += 1
        if self.prometheus and self.events_seen % 100 == 0:
            self.prometheus.update(self.tracker.get_stats())

    def finish(self, drain: bool = True):
        """
        Stop workers, drop unfinished transactions and write outputs.
        """
        if self.dispatcher:
            if drain:
                self.dispatcher.drain()
            self.dispatcher.stop()

        self.tracker.reset()
        stats = self.tracker.get_stats()
        if self.prometheus:
            self.prometheus.update(stats)

        if self.json:
            filename = self.cfg.get('output.json_file')
            path = self.json.export_reports(filename, stats=stats)
            click.echo(f"Wrote {len(self.json.reports)} reports to {path}", err=True)

        stats['threshold_ns'] = self.engine_cfg.threshold_ns
        self.stats_printer.print_stats(stats)


def _run_live(mode, threshold_ms, pid, binary, duration, prometheus_port, record,
              config_file, max_active, workers, output_format, output, no_color):
    from pgslower.collector.event_handler import EventHandler
    from pgslower.collector.replay import EventRecorder
    from pgslower.collector.tracer import PostgresTracer

    cfg, engine_cfg = load_settings(threshold_ms, config_file, max_active, workers,
                                    output_format, output, no_color)

    pid = pid or cfg.get('feed.pid')
    binary = binary or cfg.get('feed.binary')
    if not pid and not binary:
        raise click.UsageError("One of --pid or --binary is required")

    if pid:
        if not validate_pid(pid):
            click.echo(f"Error: PID {pid} not found or not accessible", err=True)
            sys.exit(EXIT_FEED_ERROR)
        logger.info(f"Tracing PID {pid} ({get_process_name(pid)}), "
                    f"threshold {engine_cfg.threshold_ms}ms")

    pipeline = Pipeline(cfg, engine_cfg, mode, prometheus_port)

    tracer = PostgresTracer({
        'pid': pid,
        'binary': binary,
        'buffer_pages': cfg.get('feed.buffer_pages', 64),
        'poll_timeout_ms': cfg.get('feed.poll_timeout_ms', 100),
    })
    event_handler = EventHandler()
    recorder = EventRecorder(record) if record else None

    if recorder:
        event_handler.register_callback(recorder)
    event_handler.register_callback(pipeline.on_event)
    tracer.register_event_handler(event_handler.handle_raw_event)

    exit_code = 0
    try:
        tracer.initialize()
        pipeline.start()
        logger.info("Tracing started. Press Ctrl+C to stop.")
        tracer.start(duration)
    except KeyboardInterrupt:
        logger.info("Stopping tracer...")
    except InstrumentationUnavailable as e:
        logger.error(str(e))
        exit_code = EXIT_NO_INSTRUMENTATION
    except FeedDisconnected as e:
        logger.error(f"{e}; discarding buffered transactions")
        exit_code = EXIT_FEED_ERROR
    finally:
        tracer.stop()
        if recorder:
            recorder.close()
        pipeline.finish(drain=exit_code == 0)

        if event_handler.error_count:
            logger.warning(f"{event_handler.error_count} perf records could not be decoded")

    if exit_code:
        sys.exit(exit_code)


@cli.command()
@click.argument('threshold_ms')
@live_options
@output_options
def txn(threshold_ms, **options):
    """
    Trace transactions slower than THRESHOLD_MS milliseconds.

    Example:
        pgslower txn 100 --pid 4242
        pgslower txn 250 --binary /usr/lib/postgresql/16/bin/postgres --workers 4
    """
    _run_live(TrackingMode.TRANSACTION, threshold_ms, **options)


@cli.command()
@click.argument('threshold_ms')
@live_options
@output_options
def query(threshold_ms, **options):
    """
    Trace single queries slower than THRESHOLD_MS milliseconds.

    Example:
        pgslower query 50 --pid 4242
    """
    _run_live(TrackingMode.QUERY, threshold_ms, **options)


@cli.command()
@click.argument('events_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('threshold_ms')
@click.option('--mode', type=click.Choice(['txn', 'query']), default='txn', help='What to track')
@output_options
def replay(events_file, threshold_ms, mode, **options):
    """
    Run the engine over a recorded event file.

    Example:
        pgslower replay events.jsonl 100
        pgslower replay events.jsonl 20 --mode query --output-format json --output slow.json
    """
    from pgslower.collector.replay import ReplayFeed

    cfg, engine_cfg = load_settings(threshold_ms, **options)
    pipeline = Pipeline(cfg, engine_cfg, TrackingMode(mode))

    exit_code = 0
    pipeline.start()
    try:
        for event in ReplayFeed(events_file):
            pipeline.on_event(event)
    except EventFeedError as e:
        click.echo(f"Error: {e}", err=True)
        exit_code = EXIT_FEED_ERROR
    finally:
        pipeline.finish(drain=exit_code == 0)

    if exit_code:
        sys.exit(exit_code)


@cli.command()
def check():
    """
    Check system prerequisites for running the tracer.

    Verifies:
    - Root privileges
    - BCC installation
    - Kernel eBPF support
    """
    if check_prerequisites():
        click.echo("\n✓ All prerequisites met!")
        sys.exit(0)
    else:
        click.echo("\n✗ Some prerequisites are missing")
        sys.exit(EXIT_NO_INSTRUMENTATION)


@cli.command()
@click.argument('pid', type=int)
def info(pid):
    """
    Show information about a PostgreSQL process.

    Example:
        pgslower info 4242
    """
    if not validate_pid(pid):
        click.echo(f"Error: PID {pid} not found", err=True)
        sys.exit(1)

    click.echo(f"Process ID: {pid}")
    click.echo(f"Process Name: {get_process_name(pid)}")

    try:
        with open(f"/proc/{pid}/cmdline", 'r') as f:
            cmdline = f.read().replace('\x00', ' ').strip()
            click.echo(f"Command Line: {cmdline}")
    except OSError:
        pass

    binary = get_process_binary(pid)
    if binary:
        click.echo(f"Binary: {binary}")
        probes = "available" if has_usdt_probes(binary) else "not found (build with --enable-dtrace)"
        click.echo(f"USDT probes: {probes}")


if __name__ == '__main__':
    cli(obj={})
