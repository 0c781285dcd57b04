from html import escape
from typing import Any, List, Optional, Sequence

from IPython.display import HTML
from rich.console import Console, Group
from rich.markup import escape as escape_markup
from rich.panel import Panel
from rich.table import Table

from stagenet.config import config
from stagenet.utils.formatting import fmt_value, truncate_name


class LayerArrayRenderer:
    """
    Display for a layer array.

    - get_panel_renderable(): rich summary table (index, name, type, description)
    - get_property_panel(i): rich panel with the property groups of one layer
    - get_notebook_renderable(): the summary as IPython HTML
    - log_summary(): print the summary and every property panel
    """

    def __init__(self, layers: Sequence[Any], top_n_layers: Optional[int] = None):
        self.layers = list(layers)
        self.top_n_layers = top_n_layers or config.num_display_layers

    def _rows(self) -> List[List[str]]:
        rows = []
        for i, layer in enumerate(self.layers[: self.top_n_layers], start=1):
            description, type_name = layer.one_line_display()
            name = f"'{truncate_name(layer.name)}'" if layer.name else "''"
            rows.append([str(i), name, type_name, description])
        return rows

    def _hidden(self) -> int:
        return max(0, len(self.layers) - self.top_n_layers)

    def get_panel_renderable(self) -> Panel:
        table = Table(
            show_header=True,
            header_style="bold blue",
            box=None,
            pad_edge=False,
            padding=(0, 1),
        )
        table.add_column("#", justify="right", style="white")
        table.add_column("Name", justify="left", style="magenta")
        table.add_column("Type", justify="left", style="cyan")
        table.add_column("Description", justify="left", style="white")

        for row in self._rows():
            table.add_row(*(escape_markup(c) for c in row))
        if self._hidden():
            table.add_row("", f"[dim]{self._hidden()} more layers[/dim]", "", "")
        if not self.layers:
            table.add_row("", "[dim]No layers[/dim]", "—", "—")

        title = f"[bold blue]{len(self.layers)}x1 layer array[/bold blue]"
        return Panel(Group(table), title=title, border_style="blue")

    def get_property_panel(self, index: int) -> Panel:
        layer = self.layers[index]
        _, type_name = layer.one_line_display()

        table = Table.grid(padding=(0, 1))
        table.add_column(justify="left", style="bold")
        table.add_column(justify="center", style="dim", no_wrap=True)
        table.add_column(justify="left", style="white")

        for group, props in layer.properties():
            table.add_row(f"[blue]{group.upper()}[/blue]", "", "")
            for prop, value in props:
                table.add_row(f"  {prop}", "[dim]|[/dim]", escape_markup(fmt_value(value)))

        return Panel(
            table,
            title=f"[bold blue]{type_name}[/bold blue]",
            border_style="blue",
        )

    def get_notebook_renderable(self) -> HTML:
        rows_html = ""
        for i, name, type_name, description in self._rows():
            rows_html += f"""
                <tr>
                    <td style="text-align:right;">{i}</td>
                    <td>{escape(name)}</td>
                    <td>{escape(type_name)}</td>
                    <td>{escape(description)}</td>
                </tr>
            """

        if self._hidden():
            rows_html += f"""
                <tr style="color:gray;">
                    <td></td>
                    <td colspan="3">{self._hidden()} more layers</td>
                </tr>
            """

        if not rows_html.strip():
            rows_html = """
                <tr>
                    <td colspan="4" style="text-align:center; color:gray;">
                        No layers
                    </td>
                </tr>
            """

        html = f"""
        <div style="border:2px solid #2196f3; border-radius:8px;
                    padding:10px; margin-top:10px;">
            <h4 style="color:#2196f3; margin:0;">
                {len(self.layers)}x1 layer array
            </h4>

            <table style="width:100%; border-collapse:collapse; margin-top:8px;">
                <thead style="background:#f0f8ff;">
                    <tr>
                        <th style="text-align:right;">#</th>
                        <th style="text-align:left;">Name</th>
                        <th style="text-align:left;">Type</th>
                        <th style="text-align:left;">Description</th>
                    </tr>
                </thead>
                <tbody>
                    {rows_html}
                </tbody>
            </table>
        </div>
        """
        return HTML(html)

    def log_summary(self, console: Optional[Console] = None) -> None:
        console = console or Console()
        console.print(self.get_panel_renderable())
        for i in range(min(len(self.layers), self.top_n_layers)):
            console.print(self.get_property_panel(i))
