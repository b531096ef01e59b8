from __future__ import annotations

import json
import logging
import sys

import typer

from drainer.adapters.logging.init import init_logging
from drainer.core.config.loader import load_config_with_sources, render_config
from drainer.core.config.models import ResolvedConfig
from drainer.core.exceptions import (
    EXIT_FATAL,
    ConfigurationError,
    EarlyExit,
    UsageError,
)

logger = logging.getLogger(__name__)

# drainer 参数原样透传：未知选项与 -h/--help 都交给配置解析器处理
PASSTHROUGH = {
    "allow_extra_args": True,
    "ignore_unknown_options": True,
    "help_option_names": [],
}

app = typer.Typer(
    help="drainer 配置解析与校验：check / sources；其余参数与 drainer 命令行一致"
)


def _configure_logging(level: str, log_file: str) -> None:
    init_logging(level, log_file or None, quiet=True)


def _load(args: list[str]) -> tuple[ResolvedConfig, dict[str, str]]:
    """解析配置并把各类终止映射为退出码：提前退出 0，用法错误 2，其他致命错误 1"""
    # 合并阶段先按默认级别输出告警；合并完成后按 -L / -log-file 重新初始化
    init_logging(quiet=True)
    try:
        return load_config_with_sources(args, configure_logging=_configure_logging)
    except EarlyExit as e:
        typer.echo(e.output)
        raise typer.Exit(code=e.exit_code)
    except UsageError as e:
        typer.echo(str(e), err=True)
        if e.usage:
            typer.echo(e.usage, err=True)
        raise typer.Exit(code=e.exit_code)
    except ConfigurationError as e:
        typer.echo(f"配置错误: {e}", err=True)
        raise typer.Exit(code=EXIT_FATAL)


@app.command(
    name="check",
    context_settings=PASSTHROUGH,
    help="解析并校验配置，输出最终配置；示例：drainer-config check -config conf/drainer.yaml -dest-db-type kafka；常见错误：配置文件含未声明的键、压缩算法不支持",
)
def cmd_check(ctx: typer.Context) -> None:
    cfg, _sources = _load(list(ctx.args))
    logger.info(
        "配置检查通过",
        extra={"event": "config.check.ok", "extra": {"kind": cfg.syncer.kind}},
    )
    typer.echo(render_config(cfg))


@app.command(
    name="sources",
    context_settings=PASSTHROUGH,
    help="输出每个配置项的来源（DEFAULT/FILE/CLI/ENV）",
)
def cmd_sources(ctx: typer.Context) -> None:
    _cfg, sources = _load(list(ctx.args))
    typer.echo(json.dumps(sources, ensure_ascii=False, indent=2))


def _main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("已中断", err=True)
        sys.exit(130)


if __name__ == "__main__":
    _main()
