"""
Network Inspection Script
Prints the diamond's structure and confidence state, and saves confidence heatmaps as a PNG
"""

import sys
import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
from datetime import datetime
from dpnn import DiamondNetwork
from dpnn.persistence import load_network


CHECKPOINT_PATHS = [
    Path("checkpoints/network_state.pt"),
    Path("network_state.pt"),
]


def find_network():
    """Load the saved network checkpoint, or build a fresh one"""
    for path in CHECKPOINT_PATHS:
        if path.exists():
            print(f"📂 Loading from: {path}")
            network = load_network(str(path))
            if network is not None:
                return network
            print(f"⚠️  Checkpoint {path} is incompatible, skipping")

    print("❌ No usable checkpoint found, inspecting a freshly built network")
    return DiamondNetwork(4, 4, seed=0)


def visualize_network(network, state):
    """Display the stage layout and per-connection statistics"""
    output = network.forward(state)

    print("\n" + "="*80)
    print("DIAMOND NETWORK STRUCTURE")
    print("="*80)

    print(f"\n📐 Layer Architecture:")
    for i, layer in enumerate(network.layers):
        marks = "".join("●" if active else "○" for active in layer.active)
        print(f"   Layer {i:2d} ({layer.stage.value:11s}) {layer.size:3d} nodes  {marks}")

    print(f"\n🔗 Connections:")
    for connection in network.connections:
        weights = connection.weights
        confidence = connection.confidence
        fired = sum(1 for p in network.paths if p.layer == connection.index)
        split = " split" if connection.split else ""
        print(f"\n   Layer {connection.index} → Layer {connection.index + 1} "
              f"[{connection.routing.value}{split}] {connection.source_size}→{connection.dest_size}")
        print(f"   Weight stats: mean={np.mean(weights):.3f}, std={np.std(weights):.3f}, "
              f"range=[{np.min(weights):.3f}, {np.max(weights):.3f}]")
        print(f"   Confidence: mean={np.mean(confidence):.3f}, "
              f"low (<0.15)={int(np.sum(confidence < 0.15))}, pruned={int(np.sum(weights == 0))}")
        print(f"   Paths fired this pass: {fired}")

    print(f"\n🎯 Output for state {list(state)}: {np.round(output, 3).tolist()}")
    network.print_network_summary()


def generate_confidence_image(network, output_path="output/confidence.png"):
    """Save one heatmap of connection confidence per layer pair"""
    print(f"\n🎨 Generating confidence heatmaps...")

    n = len(network.connections)
    cols = 3
    rows = (n + cols - 1) // cols
    fig, axes = plt.subplots(rows, cols, figsize=(15, 4 * rows))
    axes = np.atleast_1d(axes).flatten()

    for ax, connection in zip(axes, network.connections):
        image = ax.imshow(connection.confidence, vmin=0.0, vmax=1.0, cmap='viridis', aspect='auto')
        ax.set_title(f"{connection.index}→{connection.index + 1} ({connection.routing.value})")
        ax.set_xlabel('Target node')
        ax.set_ylabel('Source node')
        fig.colorbar(image, ax=ax)

    for ax in axes[n:]:
        ax.axis('off')

    fig.suptitle(f"Connection confidence - {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    fig.tight_layout()

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=100)
    plt.close(fig)
    print(f"   Saved to {output_path}")


def main():
    state = [float(v) for v in sys.argv[1:5]] if len(sys.argv) >= 5 else [1.0, 1.0, 0.0, 0.0]
    network = find_network()
    visualize_network(network, state)
    generate_confidence_image(network)


if __name__ == "__main__":
    main()
