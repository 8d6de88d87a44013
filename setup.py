"""
Sandcastle - Setup Configuration

Agent session and orchestration engine: task execution with bounded retry,
interactive sandbox sessions, a self-extending agent network and realtime
event fan-out.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Core dependencies
core_deps = [
    # Framework core
    "pydantic>=2.11.9",
    "psutil>=7.1.0",
    # Sandbox file watching
    "watchfiles>=1.0.0",
    "aiohttp>=3.12.15",
    "pyyaml>=6.0.2",
    # Realtime bus and session descriptors
    "redis>=5.0.1",
    # Logging
    "python-json-logger>=3.1.0",  # pythonjsonlogger.json module
    # Validation
    "jsonschema>=4.23.0",
]

# Development dependencies
dev_deps = [
    # Testing
    "pytest>=8.4.1",
    "pytest-asyncio>=1.0.0",
    "pytest-mock>=3.14.1",
    "pytest-cov>=6.2.1",
    "fakeredis>=2.26.0",
    # Code quality
    "black>=25.0.0",
    "flake8>=7.1.0",
    "mypy>=1.13.0",
]

setup(
    name="sandcastle",
    version="0.1.0",

    # Package description
    description="Agent session and orchestration engine for sandboxed coding agents",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(where="src", include=["sandcastle", "sandcastle.*"]),
    package_dir={"": "src"},

    # Python version requirement
    python_requires=">=3.11",

    # Dependencies
    install_requires=core_deps,

    # Optional dependencies (extras)
    extras_require={
        "dev": dev_deps,
    },

    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
        "Framework :: AsyncIO",
    ],

    keywords=["ai", "agents", "multi-agent", "orchestration", "sandbox", "redis", "anthropic", "openai"],

    # Package data
    package_data={"sandcastle.agents": ["definitions/*.yaml"]},
    include_package_data=True,
    zip_safe=False,
)
