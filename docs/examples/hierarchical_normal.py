import logging

import jax

import bridgejax
from bridgejax.models import hierarchical_normal as hn

jax.config.update("jax_enable_x64", True)
logging.basicConfig(level=logging.INFO)

rng_key = jax.random.PRNGKey(12345)
num_observations = 20

############################################
# Synthetic data
############################################

# The true grand mean is zero, so the data should favour H0.
rng_key, data_key = jax.random.split(rng_key)
y = hn.simulate_data(data_key, num_observations, mu=0.0, tau2=0.5, sigma2=1.0)

models = {
    "H0": (
        hn.h0_logdensity(y),
        hn.h0_bounds(num_observations),
        hn.h0_initial_position(num_observations),
        hn.h0_exact_logml(y),
    ),
    "H1": (
        hn.h1_logdensity(y),
        hn.h1_bounds(num_observations),
        hn.h1_initial_position(num_observations),
        hn.h1_exact_logml(y),
    ),
}

############################################
# Posterior sampling and bridge sampling
############################################

bridges = {}
samples = {}
for name, (logdensity_fn, (lb, ub), initial_position, exact_logml) in models.items():
    rng_key, mcmc_key, bridge_key = jax.random.split(rng_key, 3)
    mcmc = bridgejax.run_mcmc(
        mcmc_key,
        logdensity_fn,
        initial_position,
        lb=lb,
        ub=ub,
        num_chains=3,
        num_warmup=2_000,
        num_samples=10_000,
        progress_bar=True,
    )
    samples[name] = mcmc.samples
    bridges[name] = bridgejax.bridge_sampler(
        bridge_key, mcmc.samples, logdensity_fn, lb=lb, ub=ub
    )
    errors = bridgejax.error_measures(bridges[name])
    print(
        f"{name}: bridge sampling logml = {bridges[name].logml:.4f} "
        f"(approximate error {errors.percentage}), exact logml = {exact_logml:.4f}, "
        f"{int(bridges[name].niter)} iteration(s)"
    )

############################################
# Model comparison
############################################

bf01 = bridgejax.bf(bridges["H0"], bridges["H1"])
print(f"Estimated Bayes factor in favor of H0 over H1: {bf01.bf:.4f}")

exact_bf01 = bridgejax.bf(models["H0"][3], models["H1"][3])
print(f"Exact Bayes factor in favor of H0 over H1: {exact_bf01.bf:.4f}")

probabilities = bridgejax.post_prob(
    bridges["H0"], bridges["H1"], model_names=list(bridges)
)
for name, probability in probabilities.items():
    print(f"Posterior probability of {name}: {probability:.4f}")

# Repeating the proposal draws shows the variability of the estimator, for
# both the normal and the Warp-III proposals.
logdensity_fn, (lb, ub), _, exact_logml = models["H1"]
for method in ("normal", "warp3"):
    rng_key, repeat_key = jax.random.split(rng_key)
    repeated = bridgejax.bridge_sampler(
        repeat_key,
        samples["H1"],
        logdensity_fn,
        lb=lb,
        ub=ub,
        method=method,
        repetitions=10,
    )
    errors = bridgejax.error_measures(repeated)
    print(
        f"H1, {method}: logml in [{errors.min:.4f}, {errors.max:.4f}], "
        f"interquartile range {errors.iqr:.4f} (exact {exact_logml:.4f})"
    )
