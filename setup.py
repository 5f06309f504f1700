from setuptools import setup, find_packages

setup(
    name='coop-localization',
    version='0.1.0',
    description='Cooperative pose-graph localization from pose, twist, range and inertial measurements',
    packages=find_packages('src'),
    package_dir={'': 'src'},
    python_requires='>=3.8',
    install_requires=[
        'numpy',
        'scipy',
        'attrs>=22.2',
        'gtsam',
        'PyYAML',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'coop-localization-replay=coop_localization.replay:main',
        ],
    },
)
