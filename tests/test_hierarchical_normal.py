"""End-to-end comparison of the two hierarchical normal models."""
import chex
import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import numpy as np
from absl.testing import absltest, parameterized
from scipy.integrate import dblquad, quad

import bridgejax
from bridgejax.models import hierarchical_normal as hn

jax.config.update("jax_enable_x64", True)

NUM_OBSERVATIONS = 10


class ModelTest(chex.TestCase):
    def setUp(self):
        super().setUp()
        self.y = hn.simulate_data(jax.random.key(0), NUM_OBSERVATIONS)

    def test_simulate_data(self):
        y = hn.simulate_data(jax.random.key(1), 5000, mu=2.0, tau2=0.5, sigma2=1.0)
        chex.assert_shape(y, (5000,))
        np.testing.assert_allclose(y.mean(), 2.0, atol=0.1)
        np.testing.assert_allclose(y.var(), 1.5, rtol=0.1)

    def test_h0_logdensity(self):
        position = hn.h0_initial_position(NUM_OBSERVATIONS)
        expected = (
            stats.gamma.logpdf(1.0, 1.0)
            + stats.norm.logpdf(jnp.zeros(NUM_OBSERVATIONS), 0.0, 1.0).sum()
            + stats.norm.logpdf(self.y, 0.0, 1.0).sum()
        )
        np.testing.assert_allclose(hn.h0_logdensity(self.y)(position), expected)

    def test_h1_adds_the_grand_mean(self):
        position = hn.h1_initial_position(NUM_OBSERVATIONS)
        h0_position = {k: position[k] for k in ("inv_tau2", "theta")}
        difference = hn.h1_logdensity(self.y)(position) - hn.h0_logdensity(self.y)(
            h0_position
        )
        np.testing.assert_allclose(difference, stats.norm.logpdf(0.0))

    def test_bounds_match_positions(self):
        for bounds_fn, position_fn in [
            (hn.h0_bounds, hn.h0_initial_position),
            (hn.h1_bounds, hn.h1_initial_position),
        ]:
            lb, ub = bounds_fn(NUM_OBSERVATIONS)
            self.assertIsNone(ub)
            self.assertEqual(set(lb), set(position_fn(NUM_OBSERVATIONS)))
            self.assertEqual(lb["inv_tau2"], 0.0)

    def test_exact_logml_single_observation(self):
        """With one observation, theta can be integrated out by hand."""
        y = jnp.array([0.7])

        def integrand(inv_tau2):
            variance = 1.0 / inv_tau2 + 1.0
            return np.exp(-inv_tau2) * np.exp(
                -0.5 * 0.7**2 / variance
            ) / np.sqrt(2 * np.pi * variance)

        expected = np.log(quad(integrand, 0.0, np.inf)[0])
        np.testing.assert_allclose(hn.h0_exact_logml(y), expected, rtol=1e-6)

    def test_h1_exact_logml_with_mu_integrated(self):
        """Integrating mu numerically reproduces the closed form."""
        y = np.array([0.3, -0.4])

        def integrand(mu, inv_tau2):
            variance = 1.0 / inv_tau2 + 1.0
            likelihood = np.prod(
                np.exp(-0.5 * (y - mu) ** 2 / variance) / np.sqrt(2 * np.pi * variance)
            )
            return likelihood * np.exp(-0.5 * mu**2) / np.sqrt(2 * np.pi) * np.exp(-inv_tau2)

        value, _ = dblquad(integrand, 0.0, np.inf, -np.inf, np.inf)
        np.testing.assert_allclose(hn.h1_exact_logml(y), np.log(value), rtol=1e-4)


class WorkflowTest(parameterized.TestCase):
    """Sample both models, estimate their marginal likelihoods and compare them."""

    def setUp(self):
        super().setUp()
        data_key, self.key = jax.random.split(jax.random.key(42))
        self.y = hn.simulate_data(data_key, NUM_OBSERVATIONS)

    def run_model(self, rng_key, logdensity_fn, bounds, initial_position, method):
        mcmc_key, bridge_key = jax.random.split(rng_key)
        lb, ub = bounds
        mcmc = bridgejax.run_mcmc(
            mcmc_key,
            logdensity_fn,
            initial_position,
            lb=lb,
            ub=ub,
            num_chains=2,
            num_warmup=500,
            num_samples=2000,
        )
        return bridgejax.bridge_sampler(
            bridge_key, mcmc.samples, logdensity_fn, lb=lb, ub=ub, method=method
        )

    @parameterized.parameters(["normal", "warp3"])
    def test_bayes_factor(self, method):
        h0_key, h1_key = jax.random.split(self.key)
        bridge_h0 = self.run_model(
            h0_key,
            hn.h0_logdensity(self.y),
            hn.h0_bounds(NUM_OBSERVATIONS),
            hn.h0_initial_position(NUM_OBSERVATIONS),
            method,
        )
        bridge_h1 = self.run_model(
            h1_key,
            hn.h1_logdensity(self.y),
            hn.h1_bounds(NUM_OBSERVATIONS),
            hn.h1_initial_position(NUM_OBSERVATIONS),
            method,
        )
        exact_h0 = hn.h0_exact_logml(self.y)
        exact_h1 = hn.h1_exact_logml(self.y)
        np.testing.assert_allclose(bridge_h0.logml, exact_h0, atol=0.15)
        np.testing.assert_allclose(bridge_h1.logml, exact_h1, atol=0.15)

        bf01 = bridgejax.bf(bridge_h0, bridge_h1, log=True)
        np.testing.assert_allclose(bf01.bf, exact_h0 - exact_h1, atol=0.25)

        probabilities = bridgejax.post_prob(
            bridge_h0, bridge_h1, model_names=["H0", "H1"]
        )
        np.testing.assert_allclose(probabilities["H0"] + probabilities["H1"], 1.0)
        np.testing.assert_allclose(
            probabilities["H0"],
            1.0 / (1.0 + np.exp(exact_h1 - exact_h0)),
            atol=0.08,
        )


if __name__ == "__main__":
    absltest.main()
