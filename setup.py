from setuptools import find_packages, setup

DESCRIPTION = 'Lazy, subsettable access to CoverageJSON ' \
              'coverages and collections for Python.'

with open('README.md') as f:
    LONG_DESCRIPTION = f.read()

dependencies = [
    'numpy>=1.26',
    'packaging>=22.0',
    'donfig>=0.8',
    'typing_extensions>=4.9',
    'uritemplate>=4.1',
]

setup(
    name='covjson-reader',
    version='0.1.0',
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/markdown',
    setup_requires=[
        'setuptools>=38.6.0',
    ],
    extras_require={
        'remote': [
            'fsspec>=2023.10.0',
            'aiohttp',
        ],
        'test': [
            'pytest',
            'pytest-asyncio',
            'hypothesis',
            'fsspec>=2023.10.0',
        ],
    },
    python_requires='>=3.11, <4',
    install_requires=dependencies,
    package_dir={'': 'src'},
    packages=find_packages('src'),
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python',
        'Topic :: Scientific/Engineering :: GIS',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'Operating System :: Unix',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
    ],
    license='MIT',
)
