"""Remote shell script templates.

Every script is rendered with jinja2 under StrictUndefined; values coming from
configuration must pass through the ``q`` filter (shlex.quote).
"""

import shlex
from dataclasses import dataclass
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined

_env = Environment(
    loader=BaseLoader(),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    autoescape=False,
)
_env.filters["q"] = lambda value: shlex.quote(str(value))


def render(template: str, **context: Any) -> str:
    """Render a script template."""
    return _env.from_string(template).render(**context)


@dataclass(frozen=True)
class RemoteStep:
    """A named, independently attributable remote unit."""

    name: str
    template: str
    description: str = ""

    def render(self, **context: Any) -> str:
        return render(self.template, **context)


_PRELUDE = "set -e\ncd {{ base | q }}\n"

INSTALL_STEPS: tuple[RemoteStep, ...] = (
    RemoteStep(
        "extract",
        _PRELUDE
        + "tar -xzf {{ archive | q }} --strip-components=1\n"
        + "rm -f {{ archive | q }}\n",
        "Extracting archive",
    ),
    RemoteStep(
        "environment",
        _PRELUDE
        + "if [ -f .env.example ] && [ ! -f .env ]; then\n"
        + "    cp .env.example .env\n"
        + "    echo 'Environment file created from example'\n"
        + "fi\n",
        "Ensuring environment file",
    ),
    RemoteStep(
        "runtime_version",
        _PRELUDE
        + "version=$(php -r 'echo PHP_VERSION_ID;')\n"
        + 'if [ "$version" -lt {{ min_version }} ]; then\n'
        + '    echo "PHP version too old ($version < {{ min_version }})"\n'
        + "    exit 1\n"
        + "fi\n",
        "Checking PHP version",
    ),
    RemoteStep(
        "dependencies",
        _PRELUDE
        + "composer install --no-interaction --prefer-dist --optimize-autoloader --no-dev 2>&1\n",
        "Installing Composer dependencies",
    ),
    RemoteStep(
        "app_key",
        _PRELUDE
        + "if ! grep -q 'APP_KEY=base64:' .env 2>/dev/null; then\n"
        + "    php artisan key:generate --force\n"
        + "    echo 'Application key generated'\n"
        + "fi\n",
        "Generating application key",
    ),
    RemoteStep(
        "migration",
        _PRELUDE + "php artisan migrate --force 2>&1\n",
        "Running database migrations",
    ),
    RemoteStep(
        "assets",
        _PRELUDE
        + "if [ -f package.json ]; then\n"
        + "    npm ci --production 2>&1\n"
        + "    if [ -f vite.config.js ] || [ -f webpack.mix.js ]; then\n"
        + "        npm run build 2>&1\n"
        + "    fi\n"
        + "else\n"
        + "    echo 'No package.json, skipping asset build'\n"
        + "fi\n",
        "Building frontend assets",
    ),
    RemoteStep(
        "caches",
        _PRELUDE
        + "php artisan cache:clear\n"
        + "php artisan config:cache\n"
        + "php artisan route:cache\n"
        + "php artisan view:cache\n",
        "Optimizing application caches",
    ),
    RemoteStep(
        "permissions",
        _PRELUDE
        + "sudo chown -R {{ web_user | q }}:{{ web_user | q }} {{ base | q }}\n"
        + "sudo find storage -type d -exec chmod 775 {} \\;\n"
        + "sudo find storage -type f -exec chmod 664 {} \\;\n"
        + "sudo find bootstrap/cache -type d -exec chmod 775 {} \\;\n",
        "Setting file permissions",
    ),
    RemoteStep(
        "restart_runtime",
        "set -e\n"
        + "sudo systemctl restart {{ runtime | q }}\n"
        + "sleep {{ delay }}\n"
        + "systemctl is-active --quiet {{ runtime | q }}\n",
        "Restarting runtime service",
    ),
    RemoteStep(
        "restart_web",
        "set -e\n"
        + "sudo systemctl restart {{ web | q }}\n"
        + "sleep {{ delay }}\n"
        + "systemctl is-active --quiet {{ web | q }}\n",
        "Restarting web service",
    ),
    RemoteStep(
        "workers",
        "if command -v supervisorctl >/dev/null 2>&1; then\n"
        + "    sudo supervisorctl restart {{ supervisor_group | q }} 2>/dev/null"
        + " || echo 'No queue workers to restart'\n"
        + "else\n"
        + "    echo 'Supervisor not installed, skipping workers'\n"
        + "fi\n",
        "Restarting queue workers",
    ),
)

BACKUP_PROBE = "test -d {{ base | q }}\n"

BACKUP_COPY = """set -e
mkdir -p {{ backup_dir | q }}
cp -r {{ base | q }} {{ content | q }}
"""

BACKUP_INIT = """set -e
mkdir -p {{ backup_dir | q }}
sudo mkdir -p {{ base | q }}
sudo chown {{ user | q }}:{{ user | q }} {{ base | q }}
"""

BACKUP_LIST = (
    "find {{ root | q }} -maxdepth 1 -mindepth 1 -type d -name {{ pattern | q }}"
    " -printf '%T@ %p\\n' 2>/dev/null || true\n"
)

BACKUP_PRUNE = "rm -rf{% for path in paths %} {{ path | q }}{% endfor %}\n"

RESTORE_STEPS: tuple[RemoteStep, ...] = (
    RemoteStep(
        "verify_backup",
        "test -d {{ content | q }}\n",
        "Checking backup content",
    ),
    RemoteStep(
        "stop_services",
        "{% for service in services %}"
        "sudo systemctl stop {{ service | q }} || true\n"
        "{% endfor %}",
        "Stopping services",
    ),
    RemoteStep(
        "replace_tree",
        "set -e\n"
        "rm -rf {{ base | q }} || sudo rm -rf {{ base | q }}\n"
        "cp -r {{ content | q }} {{ base | q }}\n",
        "Restoring live tree",
    ),
    RemoteStep(
        "ownership",
        "sudo chown -R {{ web_user | q }}:{{ web_user | q }} {{ base | q }}\n",
        "Restoring ownership",
    ),
    RemoteStep(
        "start_services",
        "set -e\n"
        "{% for service in services %}"
        "sudo systemctl start {{ service | q }}\n"
        "{% endfor %}",
        "Starting services",
    ),
)

LOCK_ACQUIRE = """if mkdir {{ lock | q }} 2>/dev/null; then
    printf '%s\\n' {{ owner | q }} > {{ lock | q }}/owner
    exit 0
fi
echo "held by: $(cat {{ lock | q }}/owner 2>/dev/null || echo unknown)"
exit 75
"""

LOCK_RELEASE = """if [ "$(cat {{ lock | q }}/owner 2>/dev/null)" = {{ owner | q }} ]; then
    rm -rf {{ lock | q }}
fi
"""

LOG_DIR_PREPARE = (
    "sudo mkdir -p {{ log_dir | q }} && sudo chown {{ user | q }}:{{ user | q }} {{ log_dir | q }}\n"
)

# Survey checks print one line; exit 0 = pass, 1 = fail, 2 = unknown.
SURVEY_OS = "lsb_release -d 2>/dev/null | cut -f2 || uname -a\n"
SURVEY_KERNEL = "uname -r\n"
SURVEY_ARCH = "uname -m\n"
SURVEY_UPTIME = "uptime -p 2>/dev/null || uptime\n"
SURVEY_CPU = (
    "echo \"$(top -bn1 | grep 'Cpu(s)' | awk '{print $2}' | cut -d'%' -f1)%\"\n"
)
SURVEY_MEMORY = "free -h\n"
SURVEY_DISK = "df -h | grep -E '^/dev|^tmpfs' | head -10\n"
SURVEY_NETWORK = "ip addr show | grep -E '^[0-9]+:|inet ' | head -10\n"

SURVEY_SERVICE = """if systemctl is-active --quiet {{ service | q }} 2>/dev/null; then
    echo RUNNING
    exit 0
elif systemctl list-unit-files 2>/dev/null | grep -q "^"{{ service | q }}; then
    echo STOPPED/FAILED
    exit 1
fi
echo 'NOT INSTALLED'
exit 2
"""

SURVEY_RUNTIME_VERSION = "php -v | head -1\n"

SURVEY_EXTENSION = """if php -m 2>/dev/null | grep -qix {{ extension | q }}; then
    echo present
    exit 0
fi
echo missing
exit 1
"""

_APP_PRELUDE = """if [ ! -f {{ base | q }}/artisan ]; then
    echo 'Application not found at '{{ base | q }}
    exit 2
fi
cd {{ base | q }}
"""

SURVEY_FRAMEWORK_VERSION = _APP_PRELUDE + "php artisan --version\n"

SURVEY_ENV_FLAG = (
    _APP_PRELUDE
    + "value=$(grep '^{{ key }}=' .env 2>/dev/null | cut -d'=' -f2)\n"
    + 'if [ -z "$value" ]; then echo Unknown; exit 2; fi\n'
    + 'echo "$value"\n'
)

SURVEY_DATABASE = (
    _APP_PRELUDE
    + "if timeout 10 php artisan migrate:status >/dev/null 2>&1; then\n"
    + "    echo CONNECTED\n"
    + "    exit 0\n"
    + "fi\n"
    + "echo 'CONNECTION FAILED'\n"
    + "exit 1\n"
)

SURVEY_WRITABLE = (
    _APP_PRELUDE
    + "if [ -w {{ directory | q }} ]; then echo WRITABLE; exit 0; fi\n"
    + "echo 'NOT WRITABLE'\n"
    + "exit 1\n"
)

SURVEY_APP_LOG = (
    "tail -{{ lines }} {{ path | q }} 2>/dev/null || { echo 'No application logs found'; exit 2; }\n"
)

SURVEY_PROXY_LOG = (
    "sudo tail -{{ lines }} {{ path | q }} 2>/dev/null"
    " || { echo 'No proxy error logs accessible'; exit 2; }\n"
)

SURVEY_WORKERS = (
    "ps aux | grep -v grep | grep -E 'artisan.*queue|supervisor'"
    " || { echo 'No queue workers found'; exit 1; }\n"
)
