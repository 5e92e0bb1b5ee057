from setuptools import setup, find_packages
from pathlib import Path


def read_readme():
    this_directory = Path(__file__).parent
    readme_file = this_directory / 'README.md'
    if readme_file.exists():
        return readme_file.read_text(encoding='utf-8')
    return ""


def get_version():
    import re
    init_file = Path(__file__).parent / 'dataform_cli' / '__init__.py'
    match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_file.read_text(encoding='utf-8'))
    if match:
        return match.group(1)
    return "0.1.0"


setup(
    name="dataform-cli-task",
    version=get_version(),
    description="Workflow task that runs Dataform CLI commands in a container or host process.",
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    packages=find_packages(include=['dataform_cli', 'dataform_cli.*']),
    python_requires=">=3.11",
    install_requires=[
        "jinja2>=3.1",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "typer>=0.9",
    ],
    extras_require={
        "kubernetes": ["kubernetes>=28.1"],
        "test": ["pytest>=7.4", "kubernetes>=28.1"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Systems Administration",
    ],
    keywords="dataform workflow task runner docker kubernetes",
    entry_points={
        'console_scripts': [
            'dataform-task=dataform_cli.cli:main',
        ],
    },
)
