# config/app_config.py - sandbox apply service configuration

import os
from types import SimpleNamespace

from dotenv import load_dotenv

load_dotenv()

appConfig = SimpleNamespace(
    e2b=SimpleNamespace(
        apiKey=os.getenv("E2B_API_KEY"),
        timeoutMinutes=15,
        timeoutMs=15 * 60 * 1000,  # 15 minutes in milliseconds
        vitePort=5173,
        viteStartupDelay=8000,
        appDir='/home/user/app',
        viteLogFile='/tmp/vite.log',
        commandTimeoutSeconds=int(os.getenv("SANDBOX_COMMAND_TIMEOUT", "120")),
        installTimeoutSeconds=int(os.getenv("SANDBOX_INSTALL_TIMEOUT", "300")),
    ),

    packages=SimpleNamespace(
        useLegacyPeerDeps=True,
        autoRestartVite=True,
        # Shipped with the base template, never installed on request
        preinstalled=('react', 'react-dom'),
    ),

    files=SimpleNamespace(
        scaffoldFiles=(
            'tailwind.config.js',
            'vite.config.js',
            'vite.config.mjs',
            'package.json',
            'package-lock.json',
            'tsconfig.json',
            'postcss.config.js',
        ),
        acceptedRoots=('src/', 'public/'),
        acceptedTopLevel=('index.html',),
        sourceRoot='src/',
        componentsRoot='src/components/',
        baseTemplateFiles=(
            'package.json',
            'vite.config.mjs',
            'tailwind.config.js',
            'postcss.config.js',
            'index.html',
            'src/main.jsx',
            'src/App.jsx',
            'src/index.css',
        ),
        invalidUtilityClasses={
            'shadow-3xl': 'shadow-2xl',
            'shadow-4xl': 'shadow-2xl',
            'shadow-5xl': 'shadow-2xl',
        },
        entryFiles=('src/App.jsx', 'src/App.tsx', 'src/App.js'),
        manifestExtensions=('.jsx', '.js', '.tsx', '.ts', '.css', '.json'),
        manifestMaxBytes=10000,
    ),

    morph=SimpleNamespace(
        apiKey=os.getenv("MORPH_API_KEY"),
        baseUrl=os.getenv("MORPH_BASE_URL", "https://api.morphllm.com/v1"),
        model=os.getenv("MORPH_MODEL", "morph-v3-large"),
    ),

    sandbox=SimpleNamespace(
        provider=os.getenv("SANDBOX_PROVIDER", "e2b"),
        viteErrorHistory=50,
    ),

    state=SimpleNamespace(
        stateFile=os.getenv("SANDBOX_STATE_FILE", '/tmp/sandbox_apply_state.json'),
        lockFile=os.getenv("SANDBOX_STATE_FILE", '/tmp/sandbox_apply_state.json') + '.lock',
    ),

    # URL patterns for E2B
    urlPatterns=SimpleNamespace(
        primary='https://{port}-{sandboxId}.e2b.app',
    )
)
