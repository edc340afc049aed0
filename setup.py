from setuptools import setup, find_packages

setup(
    name="trajsim",
    version="0.1.0",
    description="Process-oriented discrete-event simulation with trajectories, resources and signals",
    author="adamfilli",
    packages=find_packages(include=["trajsim", "trajsim.*"]),
    install_requires=[
        "pandas",
    ],
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
    python_requires=">=3.11",
)
