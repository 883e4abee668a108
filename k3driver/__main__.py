import sys

from k3driver.main import main

sys.exit(main())
