#!/usr/bin/env python3
"""
Train a network on one of the built-in problems without a display.

Runs the same cycle the web presenter runs (train a few epochs, report the
error) and optionally writes the final decision surface to a PNG file.

Usage:
    python scripts/train_headless.py xor --cycles 200 --seed 7
    python scripts/train_headless.py spiral --output spiral.png
"""

import argparse
import sys

import numpy as np

from neuralvis.datasets import available_datasets, get_dataset
from neuralvis.errors import NeuralVisError
from neuralvis.visualizer import TrainingSession, DEFAULT_RESOLUTION


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('dataset', choices=available_datasets(),
                        help='problem to train on')
    parser.add_argument('--cycles', type=int, default=100,
                        help='number of training cycles (default: 100)')
    parser.add_argument('--epochs-per-cycle', type=int, default=None,
                        help="epochs per cycle (default: the problem's hint)")
    parser.add_argument('--seed', type=int, default=None,
                        help='seed for data generation, initialisation and shuffling')
    parser.add_argument('--report-every', type=int, default=10,
                        help='print status every N cycles (default: 10)')
    parser.add_argument('--output', default=None,
                        help='write the final decision surface to this PNG file')
    parser.add_argument('--resolution', type=int, default=DEFAULT_RESOLUTION,
                        help=f'surface grid resolution (default: {DEFAULT_RESOLUTION})')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run the training loop and return the process exit code."""
    args = parse_args(argv)

    if args.cycles < 1:
        print("❌ Error: --cycles must be at least 1")
        return 1
    if args.epochs_per_cycle is not None and args.epochs_per_cycle < 1:
        print("❌ Error: --epochs-per-cycle must be at least 1")
        return 1
    if args.report_every < 1:
        print("❌ Error: --report-every must be at least 1")
        return 1

    rng = np.random.default_rng(args.seed)

    try:
        dataset = get_dataset(args.dataset, rng=rng)
        session = TrainingSession(dataset, rng=rng)
    except NeuralVisError as e:
        print(f"❌ Error: {e}")
        return 1

    print("=" * 60)
    print(f"Training: {dataset.display_name}")
    print(session.network)
    print("=" * 60)

    for cycle in range(1, args.cycles + 1):
        session.advance(args.epochs_per_cycle)
        if cycle % args.report_every == 0 or cycle == args.cycles:
            print(" | ".join(session.status_lines()[:2]))

    if args.output:
        session.save_surface(args.output, args.resolution)
        print(f"\n💾 Decision surface written to: {args.output}")

    print("\n✅ Training complete")
    return 0


if __name__ == '__main__':
    sys.exit(main())
