import os
import re
import sys

import setuptools

NAME = "bridgejax"


def get_version():
    with open(os.path.join(NAME, "_version.py"), encoding="utf-8") as f:
        return re.search(r'__version__ = "([^"]+)"', f.read()).group(1)


version = get_version()

# Handle builds of nightly release
if "BUILD_BRIDGEJAX_NIGHTLY" in os.environ:
    from datetime import datetime, timezone

    NAME += "-nightly"
    version += datetime.now(timezone.utc).strftime(r".dev%Y%m%d")


# READ README.md for long description on PyPi.
try:
    long_description = open("README.md", encoding="utf-8").read()
except Exception as e:
    sys.stderr.write(f"Failed to read README.md:\n  {e}\n")
    sys.stderr.flush()
    long_description = ""


setuptools.setup(
    name=NAME,
    author="The bridgejax team",
    description="Marginal likelihoods and Bayes factors by bridge sampling in JAX",
    long_description=long_description,
    version=version,
    packages=setuptools.find_packages(include=["bridgejax", "bridgejax.*"]),
    python_requires=">=3.9",
    install_requires=[
        "blackjax>=1.2.4,<1.6",
        "jax>=0.4.16,<=0.4.35",
        "jaxlib>=0.4.16,<=0.4.35",
        "numpy",
        "scipy",
        "typing_extensions",
    ],
    extras_require={
        "test": [
            "absl-py",
            "chex",
            "pytest",
        ],
    },
    long_description_content_type="text/markdown",
    keywords="bayesian statistics model comparison marginal likelihood bridge sampling",
    license="Apache License 2.0",
)
