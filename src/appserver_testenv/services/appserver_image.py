"""Application server image definition for appserver-testenv."""

import json
import shlex

from appserver_testenv.constants import WILDFLY_HOME


class AppServerImageService:
    """Builds the Dockerfile of the application server image."""

    def __init__(self, wildfly_home: str = WILDFLY_HOME):
        self.wildfly_home = wildfly_home

    def build_dockerfile(self, base_image: str, admin_user: str, admin_password: str) -> str:
        add_user = " ".join(
            [
                f"{self.wildfly_home}/bin/add-user.sh",
                shlex.quote(admin_user),
                shlex.quote(admin_password),
                "--silent",
            ]
        )
        # Bind public and management interfaces to all addresses so the
        # mapped ports reach them from outside the container.
        command = json.dumps(
            [
                f"{self.wildfly_home}/bin/standalone.sh",
                "-b",
                "0.0.0.0",
                "-bmanagement",
                "0.0.0.0",
            ]
        )

        return f"""
FROM {base_image}
USER jboss
RUN {add_user}
CMD {command}
""".strip()
