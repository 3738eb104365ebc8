import os
import sys
import time
import logging
import numpy as np
import matplotlib.pyplot as plt
from sklearn.datasets import make_moons # Using this for the classification example

sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
from clear_fc import ArrayDataset, ConstantRate, LayerConfig, Network, RandomDataset, StepDecayRate, Trainer


# --- Plotting Function ---

def plot_history(history: dict, title: str):
    """Plots the per-pass training cost recorded by a Trainer."""
    plt.figure(title, figsize=(8, 5))
    plt.plot(history['iteration'], history['cost'], label='Training Cost')
    plt.xlabel('Iteration')
    plt.ylabel('Cost')
    plt.title(title)
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.ylim(bottom=0)
    plt.tight_layout()


# --- Polynomial Regression Example ---

def target(x: np.ndarray):
    return [x[0] * 2.0 + 4 * x[1] - 3 * x[2]]


def polynomial_example():
    """Learns y = 2*x0 + 4*x1 - 3*x2 with a single identity layer."""
    logger = logging.getLogger("PolynomialExample")
    logger.setLevel(logging.INFO)

    network = Network(3, [LayerConfig(size=1, activation='identity')])
    print(network.summary())

    training = RandomDataset(seed=42, input_size=3, max_value=1000, n_samples=500, fn=target)
    test = RandomDataset(seed=50, input_size=3, max_value=1000, n_samples=100, fn=target)

    trainer = Trainer(network, ConstantRate(0.1), cost='half_squared',
                      max_iterations=20, tolerance=0.001, logger=logger)
    report = trainer.train_with_backprop(training, test, batch_size=1)
    if not report.ok:
        logger.error(f"failed to train neural network: {report.error}")
        return

    for x in ([1.0, 2.0, 3.0], [0.0, 2.0, 3.0], [1.0, 2.0, 0.0]):
        pred = network.forward(x)
        logger.info(f"input x={x} expected y={target(np.array(x))} received {pred.ravel()}")
    plot_history(trainer.history, "Polynomial Training History")


# --- Make Moons Example ---

def make_moons_example():
    """Demonstrates training on the 'make_moons' dataset."""
    logger = logging.getLogger("MakeMoonsExample")
    logger.setLevel(logging.INFO)

    # --- Data Preparation ---
    logger.info("Generating make_moons dataset...")
    X_original, y_raw = make_moons(n_samples=300, noise=0.1, random_state=42)
    X = (X_original - X_original.mean(axis=0)) / (X_original.std(axis=0) + 1e-8)
    y = y_raw.reshape(-1, 1)

    split = 240
    training = ArrayDataset(X[:split], y[:split])
    test = ArrayDataset(X[split:], y[split:])

    # --- Network Definition ---
    network = Network(2, [
        LayerConfig(size=16, activation='tanh'),
        LayerConfig(size=16, activation='leaky_relu', params=(0.01,)),
        LayerConfig(size=1, activation='sigmoid'),
    ])
    print(network.summary())

    # --- Training ---
    trainer = Trainer(network, StepDecayRate(0.2, decay=0.5, every=5000), cost='half_squared',
                      max_iterations=200, tolerance=0.0, logger=logger)
    start_time = time.time()
    report = trainer.train_with_backprop(training, test, batch_size=1, rng=42,
                                         dropout_period=10, dropout_ratio=0.2)
    logger.info(f"Training finished in {time.time() - start_time:.2f} seconds")
    if not report.ok:
        logger.error(f"failed to train neural network: {report.error}")
        return

    predictions = network.predict(X[split:])
    accuracy = np.mean((predictions >= 0.5).astype(int) == y[split:])
    logger.info(f"Test cost: {report.test_cost:.4f}, accuracy: {accuracy:.2%}")
    plot_history(trainer.history, "Make Moons Training History")

    model_filename = os.path.join(".", "make_moons_model_weights.npz")
    network.save_weights(model_filename)


# --- Script Execution ---

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("\n" + "="*40)
    print("--- Running Polynomial Regression Example ---")
    print("="*40)
    polynomial_example()

    print("\n" + "="*40)
    print("--- Running Make Moons Classification Example ---")
    print("="*40)
    make_moons_example()

    print("\nDisplaying plots. Close plot windows to exit.")
    plt.show()
