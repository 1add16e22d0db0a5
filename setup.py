from setuptools import find_packages, setup

setup(
    name="twig",
    version="0.1.0",
    packages=find_packages(include=["twig", "twig.*"]),
    entry_points={
        "console_scripts": [
            "twig=twig.cli:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "test": ["pytest"],
    },
    description="Twig: a minimal single-user local version-control system",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Version Control",
        "Programming Language :: Python :: 3.12",
    ],
)
