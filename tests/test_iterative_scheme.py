"""Test the iterative scheme of the bridge sampling estimator."""
import chex
import jax
import jax.numpy as jnp
import jax.scipy.stats as stats
import numpy as np
from absl.testing import absltest

from bridgejax.iterative_scheme import run_iterative_scheme

jax.config.update("jax_enable_x64", True)


def unnormalized_logdensity(x):
    """A N(1, 2^2) density without its normalizing constant."""
    return -0.5 * ((x - 1.0) / 2.0) ** 2


LOG_NORMALIZER = 0.5 * jnp.log(2 * jnp.pi * 4.0)


class IterativeSchemeTest(chex.TestCase):
    def setUp(self):
        super().setUp()
        self.key = jax.random.key(7)

    def densities(self, proposal_mean, proposal_scale, num_draws=4000):
        posterior_key, proposal_key = jax.random.split(self.key)
        posterior_draws = 1.0 + 2.0 * jax.random.normal(posterior_key, (num_draws,))
        proposal_draws = proposal_mean + proposal_scale * jax.random.normal(
            proposal_key, (num_draws,)
        )
        q11 = unnormalized_logdensity(posterior_draws)
        q12 = stats.norm.logpdf(posterior_draws, proposal_mean, proposal_scale)
        q21 = unnormalized_logdensity(proposal_draws)
        q22 = stats.norm.logpdf(proposal_draws, proposal_mean, proposal_scale)
        return q11, q12, q21, q22

    def test_exact_proposal_converges_immediately(self):
        """When the proposal is the normalized posterior every ratio is the constant."""
        q11, q12, q21, q22 = self.densities(1.0, 2.0)
        result = run_iterative_scheme(q11, q12, q21, q22, neff=4000.0)
        self.assertTrue(result.converged)
        self.assertLessEqual(int(result.niter), 2)
        np.testing.assert_allclose(result.logml, LOG_NORMALIZER, rtol=1e-8)

    def test_approximate_proposal(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        result = run_iterative_scheme(q11, q12, q21, q22, neff=4000.0)
        self.assertTrue(result.converged)
        np.testing.assert_allclose(result.logml, LOG_NORMALIZER, atol=0.03)

    def test_logml_criterion(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        result_r = run_iterative_scheme(q11, q12, q21, q22, 4000.0, tol=1e-10)
        result_logml = run_iterative_scheme(
            q11, q12, q21, q22, 4000.0, tol=1e-4, criterion="logml"
        )
        self.assertTrue(result_logml.converged)
        self.assertLessEqual(int(result_logml.niter), int(result_r.niter))
        np.testing.assert_allclose(result_logml.logml, result_r.logml, atol=1e-3)

    def test_starting_value_does_not_matter(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        low = run_iterative_scheme(q11, q12, q21, q22, 4000.0, r0=1e-3)
        high = run_iterative_scheme(q11, q12, q21, q22, 4000.0, r0=1e3)
        np.testing.assert_allclose(low.logml, high.logml, atol=1e-6)

    def test_not_converged_returns_nan(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        result = run_iterative_scheme(q11, q12, q21, q22, 4000.0, maxiter=1)
        self.assertFalse(result.converged)
        self.assertEqual(int(result.niter), 1)
        self.assertTrue(np.isnan(result.logml))
        self.assertTrue(np.isfinite(result.log_r))

    def test_large_log_densities(self):
        """Ratios far outside the floating point range are handled on the log scale."""
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        shift = 5000.0
        result = run_iterative_scheme(q11 + shift, q12, q21 + shift, q22, 4000.0)
        reference = run_iterative_scheme(q11, q12, q21, q22, 4000.0)
        np.testing.assert_allclose(result.logml, reference.logml + shift, rtol=1e-8)

    def test_vmap_over_proposals(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5)
        q21_batch = jnp.stack([q21, q21[::-1]])
        q22_batch = jnp.stack([q22, q22[::-1]])
        results = jax.vmap(
            lambda q21, q22: run_iterative_scheme(q11, q12, q21, q22, 4000.0)
        )(q21_batch, q22_batch)
        chex.assert_shape(results.logml, (2,))
        np.testing.assert_allclose(results.logml[0], results.logml[1], rtol=1e-8)

    def test_invalid_arguments(self):
        q11, q12, q21, q22 = self.densities(0.8, 2.5, num_draws=10)
        with self.assertRaisesRegex(ValueError, "criterion"):
            run_iterative_scheme(q11, q12, q21, q22, 10.0, criterion="bf")
        with self.assertRaisesRegex(ValueError, "maxiter"):
            run_iterative_scheme(q11, q12, q21, q22, 10.0, maxiter=0)


if __name__ == "__main__":
    absltest.main()
