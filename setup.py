from setuptools import setup, find_packages

setup(
    name="mcx-auditor",
    version="1.0.0",
    description="MCX Security Resilience Auditor: simulated security test dashboard",
    author="soulmad",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "resilience_auditor": ["catalogs/*.yaml"],
    },
    install_requires=[
        "requests",
        "pyyaml",
        "colorama",
        "flask",
        "fpdf2",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "mcx-auditor=resilience_auditor.cli:main",
        ],
    },
    python_requires=">=3.8",
)
