"""Human-readable installation instructions (``INSTALL.md``) for composed archives."""

from __future__ import annotations

from jinja2 import Environment, StrictUndefined, TemplateError

from bundlr.core.archive.models import OrchestrationManifest
from bundlr.core.errors import BundlrError

INSTRUCTIONS_FILE = "INSTALL.md"
TRUSTED_PEOPLE_STORE = r"Cert:\LocalMachine\TrustedPeople"

# Common deployment failure codes and what to do about them.
TROUBLESHOOTING: tuple[tuple[str, str, str], ...] = (
    (
        "0x80073CF3",
        "Package failed update, dependency or conflict validation",
        "Install the dependencies in the listed order first, or remove an "
        "older version of the package.",
    ),
    (
        "0x800B0109",
        "The signing certificate is not trusted",
        "Import the certificate from Certificates/ into Local Machine > "
        "Trusted People, then retry.",
    ),
    (
        "0x80073D06",
        "A higher version of the package is already installed",
        "Uninstall the installed version or install a newer build.",
    ),
    (
        "0x80073CFB",
        "The same package version is installed with different contents",
        "Remove the installed package first (Remove-AppxPackage).",
    ),
    (
        "0x80070005",
        "Access denied",
        "Run PowerShell as Administrator.",
    ),
)

INSTALL_TEMPLATE = """\
# Installing {{ main.name }} {{ main.version }}

Created {{ manifest.created_date }}. This archive contains {{ manifest.total_packages }} \
package(s) ({{ manifest.total_size_mb }} MB) and everything needed to install them on
Windows {{ manifest.minimum_platform_version }} or later.

## Contents

| Folder | Contents |
|---|---|
| `Packages/` | The main package and its dependencies |
| `Certificates/` | Signing certificates to trust before installing |
| `manifest.json` | Machine-readable installation plan |

## Installation order

{% for identifier in manifest.installation_order %}
{{ loop.index }}. `{{ identifier }}`
{% endfor %}

## Option 1: automated (PowerShell)

Open PowerShell {{ manifest.minimum_runtime_version }} or later\
{% if manifest.requires_elevation %} **as Administrator**{% endif %} in this folder and run:

```powershell
$plan = Get-Content .\\manifest.json -Raw | ConvertFrom-Json
Get-ChildItem .\\Certificates | ForEach-Object {
    Import-Certificate -FilePath $_.FullName -CertStoreLocation Cert:\\LocalMachine\\TrustedPeople
}
foreach ($dep in $plan.Dependencies | Sort-Object InstallOrder) {
    if ($dep.PackageFile) { Add-AppxPackage -Path $dep.PackageFile }
}
Add-AppxPackage -Path $plan.MainPackage.PackageFile
```

## Option 2: manual

{% if certificates %}
1. Trust the signing certificates:
{% for cert in certificates %}
   - `Import-Certificate -FilePath {{ cert }} -CertStoreLocation {{ store }}`
{% endfor %}
{% else %}
1. No certificates are included; the packages must already be trusted on this machine.
{% endif %}
2. Install each dependency in order:
{% for dep in dependencies %}
   - {{ dep.install_order }}. {% if dep.package_file %}\
`Add-AppxPackage -Path {{ dep.package_file }}`\
{% else %}{{ dep.name }} {{ dep.min_version }} or later (not included, install from the Store)\
{% endif %}

{% else %}
   - None.
{% endfor %}
3. Install the main package: `Add-AppxPackage -Path {{ main.package_file or "<missing>" }}`
{% if main.is_development_mode %}

The main package is signed with a development certificate. Enable
*Developer Mode* in Settings > Privacy & security > For developers first.
{% endif %}

## Option 3: graphical

1. Double-click each `.cer` file in `Certificates/`, choose *Install Certificate*,
   *Local Machine*, and place it in *Trusted People*.
2. Double-click each dependency in `Packages/` in the order above and click *Install*.
3. Double-click `{{ main.package_file or main.name }}` and click *Install*.

## Troubleshooting

| Code | Meaning | Fix |
|---|---|---|
{% for code, meaning, fix in troubleshooting %}
| `{{ code }}` | {{ meaning }} | {{ fix }} |
{% endfor %}
"""


class InstructionsError(BundlrError):
    """The instructions template could not be rendered."""


_env = Environment(undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True)


def render_instructions(
    manifest: OrchestrationManifest, certificate_files: list[str] | None = None
) -> str:
    """Render ``INSTALL.md`` for an orchestration manifest.

    Raises:
        InstructionsError: If rendering fails
    """
    try:
        template = _env.from_string(INSTALL_TEMPLATE)
        return template.render(
            manifest=manifest,
            main=manifest.main_package,
            dependencies=manifest.dependencies,
            certificates=certificate_files or [],
            troubleshooting=TROUBLESHOOTING,
            store=TRUSTED_PEOPLE_STORE,
        )
    except TemplateError as e:
        raise InstructionsError(f"Cannot render installation instructions: {e}") from e
