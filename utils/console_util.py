from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# 全局控制台实例
console = Console(color_system="truecolor", force_terminal=True)


def print_notice(message, title="layer-extract", style="red", console=None):
    """
    打印一条面向用户的提示

    Args:
        message: 提示内容
        title: 面板标题
        style: 边框样式
        console: Rich控制台实例
    """
    console = console or globals().get("console", Console())
    console.print(Panel(message, title=title, border_style=style, expand=False))


def build_manifest_table(manifest):
    """
    为清单构建汇总表格

    Args:
        manifest: extractor.manifest.Manifest

    Returns:
        Table: 每个导出图层一行
    """
    table = Table(
        title=f"{manifest.width}x{manifest.height}  crop: "
        f"{manifest.crop['horizontal']} / {manifest.crop['vertical']}",
        show_lines=False,
    )
    table.add_column("bucket", style="cyan")
    table.add_column("file", style="green")
    table.add_column("size", justify="right")
    table.add_column("offset (l,t,r,b)", justify="right")
    table.add_column("snap", style="magenta")

    for bucket, entry in manifest.iter_entries():
        table.add_row(
            bucket,
            entry.file,
            f"{entry.width}x{entry.height}",
            f"{entry.from_left},{entry.from_top},{entry.from_right},{entry.from_bottom}",
            entry.snap,
        )
    return table


def print_manifest_summary(manifest, console=None):
    """
    打印清单汇总

    Args:
        manifest: extractor.manifest.Manifest
        console: Rich控制台实例
    """
    console = console or globals().get("console", Console())
    console.print()
    console.print(build_manifest_table(manifest))
