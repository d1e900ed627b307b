ID_FIELD = "Id"
NAME_FIELD = "Name"
COMPLEX_EXTERNAL_ID_SEPARATOR = ";"

SPECIAL_ENTITY_NAME = "RecordType"

# Synthetic ids for file-backed rows: prefix + zero-padded counter
SYNTHETIC_ID_PREFIX = "ID"
SYNTHETIC_ID_WIDTH = 16

CSV_SOURCE_SUB_DIRECTORY = "source"
CSV_TARGET_SUB_DIRECTORY = "target"
CSV_SOURCE_FILE_SUFFIX = "_source"
CSV_TARGET_FILE_SUFFIX = "_target"
LOG_SUB_DIRECTORY = "logs"
LOG_FILENAME = "migration.log"

VALUE_MAPPING_CSV_FILENAME = "ValueMapping.csv"
CSV_ISSUES_ERRORS_FILENAME = "CSVIssuesReport.csv"
MISSING_PARENT_LOOKUP_RECORDS_ERRORS_FILENAME = "MissingParentLookupRecords.csv"

USER_ENTITY_NAME = "User"
GROUP_ENTITY_NAME = "Group"
USER_CSV_FILENAME = "User.csv"
GROUP_CSV_FILENAME = "Group.csv"
USER_AND_GROUP_FILENAME = "UserAndGroup"

MAX_MASTER_DETAIL_PASSES = 10
MAX_ITERATIVE_ROUNDS = 10

REPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
