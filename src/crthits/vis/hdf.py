import h5py
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path

def save_hits_png(h5_path: str, out_png: str | None = None, group: str = "/crt"):
    """Scatter all CRT hit positions in two projections (x-z top view, z-y side view)."""
    h5_path = str(h5_path)
    with h5py.File(h5_path, "r") as f:
        if group not in f:
            raise KeyError(f"{group} not found in {h5_path}")
        g = f[group]["hits"]
        x = np.array(g["x_pos"], dtype=np.float32)
        y = np.array(g["y_pos"], dtype=np.float32)
        z = np.array(g["z_pos"], dtype=np.float32)
        tid = np.array(g["tagger_id"], dtype=np.int16)

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    fig, (ax_top, ax_side) = plt.subplots(1, 2, figsize=(10, 4.5))
    ax_top.scatter(z, x, c=tid, s=4, cmap="tab10")
    ax_top.set_xlabel("z [cm]")
    ax_top.set_ylabel("x [cm]")
    ax_side.scatter(z, y, c=tid, s=4, cmap="tab10")
    ax_side.set_xlabel("z [cm]")
    ax_side.set_ylabel("y [cm]")
    fig.suptitle(f"{Path(h5_path).name} : {len(x)} CRT hits")
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return out_png
