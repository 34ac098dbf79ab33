from setuptools import setup, find_packages
from pathlib import Path

this_directory = Path(__file__).parent.absolute()
long_description = Path(this_directory, 'README.md').read_text(encoding='utf-8')

setup(
    name='pipecapture',
    description='Capture what code writes to sys.stdout, sys.stderr or any stream attribute, for tests.',
    version='1.0.0',
    packages=find_packages(exclude=['test', 'test.*']),
    extras_require={'docs': ['pdoc3>=0.7'], 'test': ['pytest']},
    python_requires='>=3.8',
    zip_safe=False,
    license='MIT',
    long_description=long_description,
    long_description_content_type='text/markdown',
)
