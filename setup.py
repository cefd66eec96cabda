from setuptools import setup

setup(
    name = 'home-connect-stream',
    packages = ['home_connect_stream'],
    version = '0.1.0',
    license='MIT',
    description = 'Async event stream client for the BSH Home Connect API with rate limit aware reconnects',
    author = 'Eran Kutner',
    author_email = 'eran@kutner.org',
    url = 'https://github.com/ekutner/home-connect-async',
    keywords = ['HomeConnect', 'Home Connect', 'BSH', 'Async', 'SSE', 'Event Stream'],
    python_requires='>=3.10',
    install_requires=[
        'aiohttp',
        'dataclasses-json>=0.5.6',
        'oauth2-client>=1.2.1',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',      # Chose either "3 - Alpha", "4 - Beta" or "5 - Production/Stable" as the current state of your package
        'Intended Audience :: Developers',      # Define that your audience are developers
        'Topic :: Home Automation',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
