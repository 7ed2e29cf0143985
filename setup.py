from setuptools import setup

setup(
    name='ssh-conn',
    version='1.0.0',
    description='Manage the hosts in your SSH config and connect to them',
    python_requires='>=3.8',
    packages=['sshconn', 'sshconn.tui'],
    install_requires=[
        'keyring>=23',
        'textual>=0.48',
    ],
    extras_require={
        'test': ['pytest>=7'],
    },
    entry_points={
        'console_scripts': [
            'ssh-conn=sshconn.cli:main',
            'ssh-conn-tui=sshconn.tui:main',
        ],
    },
)
