from setuptools import setup, find_packages

setup(
    name="http_middlewares",
    version="0.1.0",
    description="Tracing and metrics middlewares for HTTP clients and servers",
    author="http_middlewares Team",
    license="Apache-2.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "httpx>=0.23.0",
        "prometheus-client>=0.14.0",
        "opentelemetry-api>=1.14.0",
        "opentelemetry-sdk>=1.14.0",
        "opentelemetry-exporter-otlp>=1.14.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-cov",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov",
            "black",
            "isort",
            "pylint",
        ],
    },
    python_requires=">=3.9",
)
