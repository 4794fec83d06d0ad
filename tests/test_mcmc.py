"""Test the multi-chain NUTS runner."""
import logging

import chex
import jax
import jax.numpy as jnp
import numpy as np
from absl.testing import absltest, parameterized

import bridgejax
from bridgejax.base import MCMCResult

jax.config.update("jax_enable_x64", True)


def logdensity_fn(position):
    """Gamma(3, rate 2) scale and independent N(1, 0.5^2) vector."""
    scale, location = position["scale"], position["location"]
    return (
        2.0 * jnp.log(scale)
        - 2.0 * scale
        - 0.5 * jnp.sum(((location - 1.0) / 0.5) ** 2)
    )


INITIAL_POSITION = {"scale": jnp.array(1.0), "location": jnp.zeros(2)}
LB = {"scale": 0.0, "location": None}


class RunMCMCTest(chex.TestCase):
    def setUp(self):
        super().setUp()
        self.key = jax.random.key(3)

    def test_samples(self):
        result = bridgejax.run_mcmc(
            self.key,
            logdensity_fn,
            INITIAL_POSITION,
            lb=LB,
            num_chains=2,
            num_warmup=400,
            num_samples=1000,
        )
        self.assertIsInstance(result, MCMCResult)
        chex.assert_shape(result.samples["scale"], (2, 1000))
        chex.assert_shape(result.samples["location"], (2, 1000, 2))
        chex.assert_shape(result.info.acceptance_rate, (2, 1000))
        chex.assert_shape(result.info.is_divergent, (2, 1000))
        self.assertIn("step_size", result.parameters)

        self.assertTrue(np.all(result.samples["scale"] > 0.0))
        np.testing.assert_allclose(result.samples["scale"].mean(), 1.5, atol=0.15)
        np.testing.assert_allclose(
            result.samples["location"].mean(axis=(0, 1)), [1.0, 1.0], atol=0.1
        )
        np.testing.assert_allclose(
            bridgejax.rhat(result.samples["location"]), 1.0, atol=0.05
        )

    def test_thinning(self):
        result = bridgejax.run_mcmc(
            self.key,
            logdensity_fn,
            INITIAL_POSITION,
            lb=LB,
            num_chains=1,
            num_warmup=200,
            num_samples=50,
            thinning=3,
        )
        chex.assert_shape(result.samples["scale"], (1, 50))
        chex.assert_shape(result.info.acceptance_rate, (1, 50))

    def test_chains_start_apart(self):
        result = bridgejax.run_mcmc(
            self.key,
            logdensity_fn,
            INITIAL_POSITION,
            lb=LB,
            num_chains=3,
            num_warmup=10,
            num_samples=5,
        )
        first_draws = result.samples["location"][:, 0]
        self.assertFalse(np.allclose(first_draws[0], first_draws[1]))

    def test_progress_bar(self):
        result = bridgejax.run_mcmc(
            self.key,
            logdensity_fn,
            INITIAL_POSITION,
            lb=LB,
            num_chains=2,
            num_warmup=20,
            num_samples=40,
            progress_bar=True,
        )
        chex.assert_shape(result.samples["scale"], (2, 40))

    def test_logs_one_record_per_run(self):
        with self.assertLogs("bridgejax.mcmc", level="INFO") as logs:
            result = bridgejax.run_mcmc(
                self.key,
                logdensity_fn,
                INITIAL_POSITION,
                lb=LB,
                num_chains=2,
                num_warmup=200,
                num_samples=100,
            )
        info_records = [r for r in logs.records if r.levelno == logging.INFO]
        self.assertLen(info_records, 1)
        self.assertIn("Running 2 chain(s)", info_records[0].getMessage())
        if not np.any(result.info.is_divergent):
            self.assertLen(logs.records, 1)

    def test_warns_on_divergences(self):
        """A hard wall in the density makes the trajectories that reach it diverge."""

        def walled_logdensity_fn(position):
            x = position["x"]
            return jnp.where(jnp.abs(x) < 1.5, -0.5 * x**2, -jnp.inf)

        with self.assertLogs("bridgejax.mcmc", level="WARNING") as logs:
            result = bridgejax.run_mcmc(
                self.key,
                walled_logdensity_fn,
                {"x": jnp.array(0.0)},
                num_chains=2,
                num_warmup=100,
                num_samples=500,
                init_jitter=0.5,
            )
        num_divergent = int(result.info.is_divergent.sum())
        self.assertGreater(num_divergent, 0)
        self.assertIn(f"{num_divergent} of the 1000 draws", logs.output[0])

    @parameterized.parameters(
        [
            {"num_chains": 0},
            {"num_warmup": 0},
            {"num_samples": 0},
            {"thinning": 0},
        ]
    )
    def test_invalid_arguments(self, **kwargs):
        with self.assertRaises(ValueError):
            bridgejax.run_mcmc(
                self.key, logdensity_fn, INITIAL_POSITION, lb=LB, **kwargs
            )

    def test_initial_position_out_of_bounds(self):
        with self.assertRaisesRegex(ValueError, "outside"):
            bridgejax.run_mcmc(
                self.key,
                logdensity_fn,
                {"scale": jnp.array(-1.0), "location": jnp.zeros(2)},
                lb=LB,
            )


if __name__ == "__main__":
    absltest.main()
