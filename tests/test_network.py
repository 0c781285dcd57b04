import numpy as np
import pytest
import torch

from stagenet.errors import ValidationError
from stagenet.layers.classification_layer import ClassificationLayer
from stagenet.layers.dropout_layer import DropoutLayer
from stagenet.layers.fully_connected_layer import FullyConnectedLayer
from stagenet.layers.lstm_layer import LSTMLayer
from stagenet.layers.sequence_input_layer import SequenceInputLayer
from stagenet.layers.softmax_layer import SoftmaxLayer
from stagenet.network import StageNetwork, build_network, capture_learnables, infer_sizes
from stagenet.store.versioned_store import VersionedLayerStore


def classifier_layers(num_features=4, hidden=6, classes=("a", "b", "c"), output_mode="last"):
    return [
        SequenceInputLayer(num_features, normalization="zerocenter", mean=np.zeros(num_features)),
        LSTMLayer(hidden, output_mode=output_mode),
        DropoutLayer(0.5),
        FullyConnectedLayer(len(classes)),
        SoftmaxLayer(),
        ClassificationLayer(classes=list(classes)),
    ]


class TestInferSizes:

    def test_sizes_flow_along_the_array(self):
        layers = classifier_layers()
        infer_sizes(layers)
        assert layers[1].input_size == 4
        assert layers[3].input_size == 6

    def test_mismatched_input_size(self):
        layers = classifier_layers()
        layers[3] = FullyConnectedLayer(3, input_size=5)
        with pytest.raises(ValidationError):
            infer_sizes(layers)

    def test_class_count_must_match_output(self):
        layers = classifier_layers()
        layers[3] = FullyConnectedLayer(2)
        with pytest.raises(ValidationError):
            infer_sizes(layers)

    def test_leading_lstm_has_nothing_to_infer_from(self):
        with pytest.raises(ValidationError):
            infer_sizes([LSTMLayer(3)])


class TestBuildNetwork:

    def test_forward_shape_and_probabilities(self):
        torch.manual_seed(0)
        net = build_network(classifier_layers())
        assert isinstance(net, StageNetwork)
        net.eval()

        with torch.no_grad():
            out = net(torch.randn(2, 5, 4))
        assert out.shape == (2, 3)
        torch.testing.assert_close(out.sum(dim=-1), torch.ones(2))

    def test_sequence_output_mode(self):
        net = build_network(classifier_layers(output_mode="sequence")[:5])
        net.eval()
        with torch.no_grad():
            out = net(torch.randn(2, 7, 4))
        assert out.shape == (2, 7, 3)
        assert net.loss is None

    def test_loss_from_classification_layer(self):
        net = build_network(classifier_layers())
        probs = torch.tensor([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]])
        loss = net.loss(probs, torch.tensor([0, 2]))
        expected = -(np.log(0.7) + np.log(0.8)) / 2
        assert loss.item() == pytest.approx(expected, rel=1e-5)

    def test_uses_existing_weights(self):
        w = np.full((2, 3), 0.25, dtype=np.float32)
        layers = [SequenceInputLayer(3), FullyConnectedLayer(2, weights=w, input_size=3)]
        net = build_network(layers)
        np.testing.assert_array_equal(net.blocks[1].weight.detach().numpy(), w)

    def test_training_step_runs(self):
        torch.manual_seed(0)
        net = build_network(classifier_layers())
        opt = torch.optim.SGD(net.parameters(), lr=0.1)
        loss = net.loss(net(torch.randn(4, 5, 4)), torch.tensor([0, 1, 2, 0]))
        loss.backward()
        opt.step()
        assert torch.isfinite(loss)

    def test_unsupported_activation(self):
        layers = [SequenceInputLayer(3), LSTMLayer(2, state_activation_function="softsign")]
        with pytest.raises(ValidationError):
            build_network(layers)


class TestCaptureLearnables:

    def test_trained_weights_flow_back(self):
        layers = classifier_layers()
        net = build_network(layers)
        with torch.no_grad():
            net.blocks[3].weight.fill_(0.5)
            net.blocks[1].lstm.bias_hh_l0.fill_(1.0)

        capture_learnables(net, layers)

        np.testing.assert_array_equal(layers[3].learnables()[0].host_value(), np.full((3, 6), 0.5))
        lstm_bias = layers[1].learnables()[2].host_value()
        np.testing.assert_allclose(
            lstm_bias, net.blocks[1].lstm.bias_ih_l0.detach().numpy() + 1.0
        )

    def test_captured_layers_encode(self):
        layers = classifier_layers()
        net = build_network(layers)
        capture_learnables(net, layers)

        store = VersionedLayerStore()
        restored = [store.decode(store.encode(l)) for l in layers]
        np.testing.assert_array_equal(
            restored[1].recurrent_weights,
            net.blocks[1].lstm.weight_hh_l0.detach().numpy(),
        )

    def test_block_count_must_match(self):
        layers = classifier_layers()
        net = build_network(layers)
        with pytest.raises(ValueError):
            capture_learnables(net, layers[:3])
