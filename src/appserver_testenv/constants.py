"""Fixed literals of the provisioned environment."""

LABEL_KEY = "appserver-testenv.run-id"

POSTGRES_IMAGE = "postgres:16-alpine"
POSTGRES_PORT = 5432
POSTGRES_NETWORK_ALIAS = "postgresdbcontainer"
POSTGRES_DB = "test"
POSTGRES_USER = "admin"
POSTGRES_PASSWORD = "admin"

WILDFLY_IMAGE = "quay.io/wildfly/wildfly:27.0.0.Final-jdk17"
WILDFLY_HOME = "/opt/jboss/wildfly"
WILDFLY_USER = "admin"
WILDFLY_PASSWORD = "Admin#007"
WILDFLY_HTTP_PORT = 8080
WILDFLY_MANAGEMENT_PORT = 9990
WILDFLY_STARTUP_TIMEOUT = 30.0

DRIVER_COORDINATE = "org.postgresql:postgresql"
DRIVER_DEPLOYMENT_NAME = "postgresdb.jar"
DEFAULT_DEPENDENCIES = ("org.postgresql:postgresql:42.7.3",)

DATASOURCE_NAME = "java:/MyApplicationDS"
DATASOURCE_JNDI_NAME = "java:/MyApplicationDS"
DATASOURCE_POOL_NAME = "pool_MyApplicationDS"
DATASOURCE_DRIVER_CLASS = "org.postgresql.Driver"
DATASOURCE_CONNECTION_URL = (
    f"jdbc:postgresql://{POSTGRES_NETWORK_ALIAS}/{POSTGRES_DB}"
    "?autoReconnect=true&useUnicode=yes&characterEncoding=UTF-8"
)

DDL_FILE = "DDL.sql"
DEFAULT_RESOURCE_DIRS = ("tests/resources", "tests", ".")

MAVEN_CENTRAL_URL = "https://repo1.maven.org/maven2"
