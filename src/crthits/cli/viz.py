from __future__ import annotations

import typer
from typing import Optional

from crthits.vis.hdf import save_hits_png

app = typer.Typer(help="CRT hit visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file containing /crt/hits"),
    group: str = typer.Option("/crt", "--group", "-g", help="Group holding the hits"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
):
    """Render the CRT hit positions of an HDF5 output file to a PNG."""
    out_png = save_hits_png(h5_path, out_png=out, group=group)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
