import numpy as np
import torch
import torch.optim as optim
from torch.utils.data import DataLoader, TensorDataset

from stagenet.layers.classification_layer import ClassificationLayer
from stagenet.layers.dropout_layer import DropoutLayer
from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.layers.sequence_input_layer import SequenceInputLayer
from stagenet.layers.softmax_layer import SoftmaxLayer
from stagenet.network import build_network, capture_learnables
from stagenet.renderers.layer_renderer import LayerArrayRenderer
from stagenet.storage.record_file import load_layers, save_layers

# -------------------------
# Synthetic per-cell feature time series
# -------------------------

NUM_FEATURES = 12
NUM_STEPS = 20
NUM_HIDDEN_UNITS = 32
CLASSES = ["-1", "1"]


def make_data(n: int, seed: int = 93):
    rng = np.random.default_rng(seed)
    y = rng.integers(0, 2, size=n)
    # developing parasites drift upwards in the first few features
    drift = np.linspace(0, 1, NUM_STEPS)[None, :, None] * y[:, None, None]
    x = rng.normal(size=(n, NUM_STEPS, NUM_FEATURES)).astype(np.float32)
    x[:, :, :3] += 2.0 * drift
    return x, y


# -------------------------
# Train
# -------------------------


def main():
    torch.manual_seed(93)
    x_train, y_train = make_data(256)
    x_test, y_test = make_data(64, seed=7)

    layers = [
        SequenceInputLayer(
            NUM_FEATURES,
            normalization="zerocenter",
            mean=x_train.reshape(-1, NUM_FEATURES).mean(axis=0),
        ),
        LSTMLayer(NUM_HIDDEN_UNITS, output_mode="last"),
        DropoutLayer(0.2),
        FullyConnectedLayer(len(CLASSES)),
        SoftmaxLayer(),
        ClassificationLayer(classes=CLASSES),
    ]

    net = build_network(layers)
    LayerArrayRenderer(layers).log_summary()

    loader = DataLoader(
        TensorDataset(torch.from_numpy(x_train), torch.from_numpy(y_train)),
        batch_size=32,
        shuffle=False,
    )
    opt = optim.Adam(net.parameters(), lr=1e-3)

    for epoch in range(10):
        net.train()
        for xb, yb in loader:
            opt.zero_grad()
            loss = net.loss(net(xb), yb)
            loss.backward()
            torch.nn.utils.clip_grad_norm_(net.parameters(), 1.0)
            opt.step()
        print(f"epoch {epoch}: loss {loss.item():.4f}")

    net.eval()
    with torch.no_grad():
        pred = net(torch.from_numpy(x_test)).argmax(dim=-1).numpy()
    print(f"test accuracy: {(pred == y_test).mean():.3f}")

    capture_learnables(net, layers)
    save_layers("liver_stage_lstm.msgpack", layers)
    restored = load_layers("liver_stage_lstm.msgpack")
    LayerArrayRenderer(restored).log_summary()


if __name__ == "__main__":
    main()
